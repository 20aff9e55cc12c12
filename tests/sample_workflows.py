"""Workflows and activities shared by the engine tests."""

from collections import Counter

from tempolite import StepFailure, WorkflowRegistry

registry = WorkflowRegistry()
CALLS: Counter = Counter()


@registry.activity
def step_a(value):
    CALLS["step_a"] += 1
    return value * 2


@registry.activity
async def step_b(value):
    CALLS["step_b"] += 1
    return value * 2


@registry.activity
def send_message(text):
    CALLS["send_message"] += 1
    return {"sent": text}


@registry.activity
def flaky(value):
    CALLS["flaky"] += 1
    if CALLS["flaky"] < 2:
        raise RuntimeError("temporarily unavailable")
    return value


@registry.activity
def explode(value):
    CALLS["explode"] += 1
    raise ValueError(f"cannot handle {value}")


@registry.activity
def opaque(value):
    CALLS["opaque"] += 1
    return object()


@registry.workflow
async def double_twice(ctx, value, sleep_ms=5000):
    first = await ctx.execute_activity("step_a", value)
    await ctx.sleep(sleep_ms)
    return await ctx.execute_activity("step_b", first)


@registry.workflow
async def notify(ctx, count=3, sleep_ms=3000):
    sent = []
    for i in range(count):
        result = await ctx.execute_activity("send_message", f"message {i}")
        sent.append(result["sent"])
        await ctx.sleep(sleep_ms)
    return sent


@registry.workflow
async def retrying(ctx, value):
    result = None
    for _ in range(3):
        try:
            result = await ctx.execute_activity("flaky", value)
            break
        except StepFailure:
            continue
    await ctx.sleep(1000)
    return await ctx.execute_activity("step_a", result)


@registry.workflow
async def failing(ctx, value):
    await ctx.execute_activity("step_a", value)
    await ctx.execute_activity("explode", value)


@registry.workflow
async def opaque_result(ctx, value):
    return await ctx.execute_activity("opaque", value)


@registry.workflow
async def approval(ctx, order_id):
    await ctx.execute_activity("step_a", 1)
    decision = await ctx.wait_for_signal("approve")
    return {"order": order_id, "decision": decision}


@registry.workflow
async def swallowing(ctx):
    try:
        await ctx.sleep(1000)
    except Exception:
        return "swallowed"
    return "woke"
