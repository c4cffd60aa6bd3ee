"""
02 - Streaming
Consume the event stream directly.
"""
import asyncio
from dotenv import load_dotenv
from loguru import logger
from agentfetch import AgentFailedError, GoalExecutionOrchestrator, ProgressEvent

load_dotenv()

# Library logs are off by default
logger.enable("agentfetch")

async def main():
    async with GoalExecutionOrchestrator() as agent:
        # Retries are announced before each backoff sleep
        agent.on("retry", lambda state: print(f"[retry] attempt {state.attempt + 1} in {state.next_delay_s}s"))

        try:
            async for event in agent.stream_goal(
                "https://scrapeme.live/shop/",
                'List the first 3 products as {"products": [{"name": "...", "price": "..."}]}',
            ):
                if isinstance(event, ProgressEvent):
                    print(f"[progress] {event.purpose}")
                else:
                    print(event.result)
        except AgentFailedError as e:
            print(f"Agent gave up: {e.message}")

if __name__ == "__main__":
    asyncio.run(main())
