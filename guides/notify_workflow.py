"""Example workflow that sends messages with durable delays.

Run it, stop the process while it sleeps, and run it again: completed
messages are not re-sent.

    python guides/notify_workflow.py
    tempolite run guides/notify_workflow.py:registry
"""

import asyncio
import logging

from tempolite import WorkflowEngine, WorkflowNotFoundError, WorkflowRegistry, get_store

registry = WorkflowRegistry()


@registry.activity
async def send_slack_message(text):
    print("sending slack message...", text)
    await asyncio.sleep(1)
    print("done: sending slack message")
    return {"success": True}


@registry.workflow
async def notify(ctx, count=3, delay_ms=3000):
    for i in range(count):
        await ctx.execute_activity("send_slack_message", f"message {i}")
        await ctx.sleep(delay_ms)
    return count


async def main():
    logging.basicConfig(level=logging.INFO)
    engine = WorkflowEngine(registry, get_store())
    await engine.recover()
    try:
        engine.get_history("workflowId")
    except WorkflowNotFoundError:
        await engine.start_workflow("workflowId", "notify")
    await engine.run_until_idle()
    print(engine.get_history("workflowId").status.value)


if __name__ == "__main__":
    asyncio.run(main())
