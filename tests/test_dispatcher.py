"""Tests for robot loading, the dispatcher and delivery channels."""
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from robocast.channels import ChannelType, DiscordWebhookChannel, HttpWebhookChannel, Robot
from robocast.channels.discord import build_embed
from robocast.scheduler.errors import DeliveryError, RateLimitedError
from robocast.scheduler.types import MessagePayload
from robocast.services.dispatcher import Dispatcher, load_robots

ROBOTS_YAML = """
robots:
  news-bot:
    channel: discord
    webhook_url: https://discord.com/api/webhooks/123/abc
    username: News Bot
  ops-hook:
    channel: webhook
    url: http://localhost:9000/hook
    headers:
      X-Token: secret
"""


class TestLoadRobots:

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "robots.yaml"
        path.write_text(ROBOTS_YAML, encoding="utf-8")

        robots = load_robots(path)

        assert set(robots) == {"news-bot", "ops-hook"}
        assert robots["news-bot"].channel == ChannelType.DISCORD
        assert robots["news-bot"].options["username"] == "News Bot"
        assert robots["ops-hook"].channel == ChannelType.WEBHOOK
        assert robots["ops-hook"].options["headers"] == {"X-Token": "secret"}

    def test_missing_file(self, tmp_path):
        assert load_robots(tmp_path / "missing.yaml") == {}

    def test_public_view_hides_secrets(self, tmp_path):
        path = tmp_path / "robots.yaml"
        path.write_text(ROBOTS_YAML, encoding="utf-8")
        dispatcher = Dispatcher(load_robots(path))

        for entry in dispatcher.list_targets():
            assert "webhook_url" not in entry
            assert "headers" not in entry
        assert dispatcher.target_count() == 2
        assert dispatcher.has_target("news-bot")
        assert not dispatcher.has_target("nobody")


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_unknown_target(self):
        dispatcher = Dispatcher()
        with pytest.raises(DeliveryError, match="Unknown target"):
            await dispatcher.deliver("nobody", MessagePayload(content="hi"))

    @pytest.mark.asyncio
    async def test_channel_not_registered(self):
        dispatcher = Dispatcher({"ops": Robot("ops", ChannelType.WEBHOOK, {"url": "http://x"})})
        with pytest.raises(DeliveryError, match="not registered"):
            await dispatcher.deliver("ops", MessagePayload(content="hi"))

    @pytest.mark.asyncio
    async def test_channel_not_connected(self):
        dispatcher = Dispatcher({"ops": Robot("ops", ChannelType.WEBHOOK, {"url": "http://x"})})
        dispatcher.register(HttpWebhookChannel())
        with pytest.raises(DeliveryError, match="not connected"):
            await dispatcher.deliver("ops", MessagePayload(content="hi"))

    def test_robots_keyed_by_name(self):
        dispatcher = Dispatcher({"alias": Robot("ops", ChannelType.WEBHOOK, {"url": "http://x"})})
        dispatcher.add_robot(Robot("alerts", ChannelType.DISCORD))

        assert sorted(dispatcher.robots) == ["alerts", "ops"]
        assert dispatcher.target_count() == 2

    def test_offline_without_connected_channel(self):
        dispatcher = Dispatcher({"ops": Robot("ops", ChannelType.WEBHOOK, {"url": "http://x"})})
        assert not dispatcher.is_online("ops")

        dispatcher.register(HttpWebhookChannel())
        assert not dispatcher.is_online("ops")

    def test_status(self):
        dispatcher = Dispatcher()
        dispatcher.register(HttpWebhookChannel())
        dispatcher.register(DiscordWebhookChannel())
        assert dispatcher.get_status() == {
            "webhook": {"connected": False},
            "discord": {"connected": False},
        }


@pytest_asyncio.fixture
async def hook_server():
    received = []

    async def accept(request):
        received.append({
            "method": request.method,
            "token": request.headers.get("X-Token"),
            "body": await request.json(),
        })
        return web.json_response({"id": "delivery-42"})

    async def reject(request):
        return web.Response(status=404, text="no such hook")

    async def throttle(request):
        return web.Response(status=429, text="slow down", headers={"Retry-After": "3"})

    app = web.Application()
    app.router.add_post("/hook", accept)
    app.router.add_put("/hook", accept)
    app.router.add_post("/gone", reject)
    app.router.add_post("/busy", throttle)

    server = test_utils.TestServer(app)
    await server.start_server()
    server.received = received
    yield server
    await server.close()


class TestHttpWebhookChannel:

    @pytest_asyncio.fixture
    async def dispatcher(self, hook_server):
        robots = {
            "ops": Robot("ops", ChannelType.WEBHOOK, {
                "url": str(hook_server.make_url("/hook")),
                "headers": {"X-Token": "secret"},
            }),
            "ops-put": Robot("ops-put", ChannelType.WEBHOOK, {
                "url": str(hook_server.make_url("/hook")),
                "method": "put",
            }),
            "gone": Robot("gone", ChannelType.WEBHOOK, {
                "url": str(hook_server.make_url("/gone")),
            }),
            "busy": Robot("busy", ChannelType.WEBHOOK, {
                "url": str(hook_server.make_url("/busy")),
            }),
            "no-url": Robot("no-url", ChannelType.WEBHOOK, {}),
        }
        dispatcher = Dispatcher(robots)
        dispatcher.register(HttpWebhookChannel(timeout=5))
        await dispatcher.connect_all()
        yield dispatcher
        await dispatcher.disconnect_all()

    @pytest.mark.asyncio
    async def test_delivers_json(self, dispatcher, hook_server):
        payload = MessagePayload(content="Deploy finished", embed={"title": "CI"})

        receipt = await dispatcher.deliver("ops", payload)

        assert receipt.id == "delivery-42"
        assert receipt.channel == "webhook"
        [request] = hook_server.received
        assert request["method"] == "POST"
        assert request["token"] == "secret"
        assert request["body"]["robot"] == "ops"
        assert request["body"]["content"] == "Deploy finished"
        assert request["body"]["embeds"] == [{"title": "CI"}]

    @pytest.mark.asyncio
    async def test_put_method(self, dispatcher, hook_server):
        await dispatcher.deliver("ops-put", MessagePayload(content="hi"))
        assert hook_server.received[0]["method"] == "PUT"

    @pytest.mark.asyncio
    async def test_error_status(self, dispatcher):
        with pytest.raises(DeliveryError, match="404"):
            await dispatcher.deliver("gone", MessagePayload(content="hi"))

    @pytest.mark.asyncio
    async def test_rate_limited(self, dispatcher):
        with pytest.raises(RateLimitedError) as exc_info:
            await dispatcher.deliver("busy", MessagePayload(content="hi"))
        assert exc_info.value.retry_after == 3.0
        assert "rate limited" in exc_info.value.reason

    def test_connected_robots_are_online(self, dispatcher):
        assert dispatcher.is_online("ops")
        assert not dispatcher.is_online("nobody")

    @pytest.mark.asyncio
    async def test_missing_url(self, dispatcher):
        with pytest.raises(DeliveryError, match="No webhook URL"):
            await dispatcher.deliver("no-url", MessagePayload(content="hi"))


class TestDiscordChannel:

    @pytest.fixture
    def robot(self):
        return Robot("news-bot", ChannelType.DISCORD, {
            "webhook_url": "https://discord.com/api/webhooks/123/abc",
            "username": "News Bot",
        })

    def test_build_embed(self, robot):
        embed = build_embed({
            "title": "Daily digest",
            "description": "Top stories",
            "color": 0xFF0000,
            "image": "https://example.com/a.png",
            "fields": [{"name": "Markets", "value": "Up", "inline": True}, {}],
        }, robot)

        assert embed.title == "Daily digest"
        assert embed.color.value == 0xFF0000
        assert embed.image.url == "https://example.com/a.png"
        assert embed.footer.text == "News Bot"
        assert [(f.name, f.value, f.inline) for f in embed.fields] == [
            ("Markets", "Up", True),
            ("\u200b", "\u200b", False),
        ]

    @pytest.mark.asyncio
    async def test_rejects_long_content(self, robot):
        channel = DiscordWebhookChannel()
        await channel.connect()
        try:
            with pytest.raises(DeliveryError, match="2000"):
                await channel.deliver(robot, MessagePayload(content="x" * 2001))
        finally:
            await channel.disconnect()

    @pytest.mark.asyncio
    async def test_rejects_empty_message(self, robot):
        channel = DiscordWebhookChannel()
        await channel.connect()
        try:
            with pytest.raises(DeliveryError):
                await channel.deliver(robot, MessagePayload())
        finally:
            await channel.disconnect()

    @pytest.mark.asyncio
    async def test_not_connected(self, robot):
        with pytest.raises(DeliveryError, match="not connected"):
            await DiscordWebhookChannel().deliver(robot, MessagePayload(content="hi"))
