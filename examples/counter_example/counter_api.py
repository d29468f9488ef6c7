import asyncio


async def fetch_count(amount: int = 1, delay: float = 0.5) -> dict:
    """模擬一個非同步 API 請求，delay 秒後返回 {"data": amount}。"""
    await asyncio.sleep(delay)
    if amount < 0:
        raise ValueError("amount must not be negative")
    return {"data": amount}
