"""
03 - Structured Query
Fast path with typed results, falling back to the agent.
"""
import asyncio
from typing import List
from dotenv import load_dotenv
from pydantic import BaseModel
from agentfetch import FetchRequest, GoalExecutionOrchestrator

load_dotenv()

class Product(BaseModel):
    name: str
    price: str

class Catalog(BaseModel):
    products: List[Product]

async def main():
    async with GoalExecutionOrchestrator() as agent:
        # Query first; if the response has no data, the goal runs instead
        catalog = await agent.fetch(FetchRequest(
            url="https://scrapeme.live/shop/",
            query="{ products[] { name price } }",
            goal='List every product on the page as {"products": [{"name": "...", "price": "..."}]}',
            schema=Catalog,
        ))

    for product in catalog.products:
        print(f"{product.name}: {product.price}")

if __name__ == "__main__":
    asyncio.run(main())
