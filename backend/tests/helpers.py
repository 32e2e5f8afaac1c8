"""Request helpers shared by the API tests."""
from httpx import AsyncClient

API = "/api/v1/users"
DEFAULT_PASSWORD = "correct-horse-battery"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def login(client: AsyncClient, user: dict, password: str = DEFAULT_PASSWORD):
    """Log in by email; the client's cookie jar is left empty afterwards."""
    response = await client.post(f"{API}/login", json={"email": user["email"], "password": password})
    client.cookies.clear()
    return response


async def refresh(client: AsyncClient, token: str):
    """Present a refresh token in the body only."""
    client.cookies.clear()
    response = await client.post(f"{API}/refresh-token", json={"refreshToken": token})
    client.cookies.clear()
    return response
