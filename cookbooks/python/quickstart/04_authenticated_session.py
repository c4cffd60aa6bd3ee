"""
04 - Authenticated Session
Query pages behind a login using a cookie-backed remote browser session.
"""
import asyncio
from dotenv import load_dotenv
from agentfetch import FetchRequest, GoalExecutionOrchestrator, map_profile

load_dotenv()

async def main():
    # Cookie comes from LINKEDIN_LI_AT; the session is destroyed on exit
    async with GoalExecutionOrchestrator() as agent:
        session_id = await agent.ensure_session()
        print(f"session: {session_id}")

        # Falls back to the agent when the query result has no name
        profile = await agent.fetch(FetchRequest(
            url="https://www.linkedin.com/in/williamhgates/",
            query="{ name headline location skills[] }",
            goal='Return the profile as {"name": "...", "headline": "...", "location": "...", "skills": [...]}',
            requires_auth=True,
            mapper=map_profile,
        ))
        print(f"{profile.name} - {profile.headline}")

if __name__ == "__main__":
    asyncio.run(main())
