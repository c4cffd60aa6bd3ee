"""
01 - Run Goal
Natural-language goal against a live page, with progress.
"""
import asyncio
from dotenv import load_dotenv
from agentfetch import GoalExecutionOrchestrator

load_dotenv()

async def main():
    # Auto-resolves TINYFISH_API_KEY from environment
    async with GoalExecutionOrchestrator() as agent:
        result = await agent.run_goal(
            "https://news.ycombinator.com",
            'Return the titles of the top 5 stories as {"titles": ["..."]}',
            on_progress=lambda purpose: print(f"> {purpose}"),
        )

    for title in result.get("titles", []):
        print(title)

if __name__ == "__main__":
    asyncio.run(main())
