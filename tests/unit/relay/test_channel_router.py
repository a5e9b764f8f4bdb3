"""
Unit tests for channel routing
"""

from models.packet import ChannelMapping
from services.relay.channel_router import ChannelRouter


def _mapping(name="general", channel_hash="ab", destination="123"):
    return ChannelMapping(name=name, channel_hash=channel_hash, destination_channel_id=destination)


class TestChannelRouter:
    """Tests for destination selection"""

    def test_mapped_channel(self):
        mapping = _mapping()
        decision = ChannelRouter({"ab": mapping}, "555").route("ab")
        assert decision.destination_channel_id == "123"
        assert decision.mapping is mapping
        assert decision.routable

    def test_lookup_is_case_insensitive(self):
        router = ChannelRouter({"AB": _mapping()})
        assert router.route("ab").destination_channel_id == "123"
        assert router.route("AB").destination_channel_id == "123"

    def test_unmapped_channel_uses_default(self):
        decision = ChannelRouter({"ab": _mapping()}, "555").route("cd")
        assert decision.destination_channel_id == "555"
        assert decision.mapping is None

    def test_mapping_without_destination_uses_default(self):
        mapping = _mapping(destination="")
        decision = ChannelRouter({"ab": mapping}, "555").route("ab")
        assert decision.destination_channel_id == "555"
        assert decision.mapping is mapping

    def test_no_destination(self):
        decision = ChannelRouter({"ab": _mapping()}).route("cd")
        assert decision.destination_channel_id is None
        assert not decision.routable

    def test_missing_hash_uses_default(self):
        assert ChannelRouter({}, "555").route(None).destination_channel_id == "555"
        assert ChannelRouter({}, "555").route("").destination_channel_id == "555"

    def test_has_destinations(self):
        assert not ChannelRouter({}).has_destinations
        assert ChannelRouter({}, "555").has_destinations
        assert ChannelRouter({"ab": _mapping()}).has_destinations

    def test_default_is_trimmed(self):
        assert ChannelRouter({}, "  555 ").default_channel_id == "555"

    def test_len(self):
        assert len(ChannelRouter({"ab": _mapping(), "cd": _mapping(channel_hash="cd")})) == 2
