import httpx
import pytest

from kpubber.errorhandling import EXIT_CANNOT_OBTAIN_IP, PublicIPError
from kpubber.publicip import PublicIPResolver


def client_for(answers):
    """AsyncClient answering per host from `answers`, recording hosts asked."""
    asked = []

    def handler(request: httpx.Request) -> httpx.Response:
        asked.append(request.url.host)
        answer = answers[request.url.host]
        if isinstance(answer, Exception):
            raise answer
        return answer

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), asked


@pytest.mark.asyncio
async def test_first_mirror_wins():
    client, asked = client_for(
        {
            "one.example": httpx.Response(200, text="203.0.113.7\n"),
            "two.example": httpx.Response(200, text="198.51.100.1"),
        }
    )
    resolver = PublicIPResolver(client, ["https://one.example", "https://two.example"])

    async with client:
        assert await resolver.resolve() == "203.0.113.7"
    assert asked == ["one.example"]


@pytest.mark.asyncio
async def test_falls_through_failing_mirrors():
    client, asked = client_for(
        {
            "down.example": httpx.ConnectError("connection refused"),
            "broken.example": httpx.Response(503, text="try later"),
            "portal.example": httpx.Response(200, text="<html>login</html>"),
            "good.example": httpx.Response(200, text="2001:db8::7"),
        }
    )
    resolver = PublicIPResolver(
        client,
        [
            "https://down.example",
            "https://broken.example",
            "https://portal.example",
            "https://good.example",
        ],
    )

    async with client:
        assert await resolver.resolve() == "2001:db8::7"
    assert asked == ["down.example", "broken.example", "portal.example", "good.example"]


@pytest.mark.asyncio
async def test_all_mirrors_failing_is_fatal():
    client, _ = client_for(
        {
            "a.example": httpx.Response(500),
            "b.example": httpx.Response(200, text=""),
        }
    )
    resolver = PublicIPResolver(client, ["https://a.example", "https://b.example"])

    async with client:
        with pytest.raises(PublicIPError) as excinfo:
            await resolver.resolve()

    assert excinfo.value.exit_code == EXIT_CANNOT_OBTAIN_IP
    assert len(excinfo.value.details) == 2


def test_requires_a_mirror():
    with pytest.raises(ValueError):
        PublicIPResolver(httpx.AsyncClient(), [])
