"""Tests for command decoding and chat argument parsing."""

from datetime import timedelta

import pytest

from modbot.services.commands import (
    COMMANDS,
    Ban,
    Log,
    Mute,
    Promote,
    Queue,
    Register,
    Report,
    Resolve,
    SetConfig,
    Track,
    Warn,
    decode_command,
    parse_args,
)
from modbot.services.errors import InvalidInput
from modbot.services.roles import Role


class TestMinimumRoles:
    @pytest.mark.parametrize(
        "name,role",
        [
            ("warn", Role.MODERATOR),
            ("unwarn", Role.MODERATOR),
            ("mute", Role.MODERATOR),
            ("unmute", Role.MODERATOR),
            ("pin", Role.MODERATOR),
            ("delete", Role.MODERATOR),
            ("resolve", Role.MODERATOR),
            ("ban", Role.ADMIN),
            ("unban", Role.ADMIN),
            ("shadowban", Role.ADMIN),
            ("unshadowban", Role.ADMIN),
            ("promote", Role.SUPER_ADMIN),
            ("demote", Role.SUPER_ADMIN),
            ("report", Role.USER),
            ("register", Role.MODERATOR),
            ("track", Role.MODERATOR),
            ("comment", Role.MODERATOR),
            ("stats", Role.MODERATOR),
            ("config", Role.SUPER_ADMIN),
            ("set", Role.SUPER_ADMIN),
        ],
    )
    def test_min_role(self, name, role):
        assert COMMANDS[name].min_role == role

    def test_queries_are_read_only(self):
        assert not COMMANDS["queue"].mutating
        assert not COMMANDS["status"].mutating
        assert COMMANDS["warn"].mutating
        assert not COMMANDS["config"].mutating
        assert COMMANDS["set"].mutating
        assert COMMANDS["register"].mutating


class TestDecode:
    def test_warn_default_reason(self):
        assert decode_command("warn", {"user_id": "5"}) == Warn("5", "No reason provided")

    def test_missing_user(self):
        with pytest.raises(InvalidInput, match="user_id"):
            decode_command("ban", {"reason": "x"})

    def test_unknown_command(self):
        with pytest.raises(InvalidInput):
            decode_command("nuke", {})

    def test_mute_duration(self):
        cmd = decode_command("mute", {"user_id": "5", "duration": "3d", "reason": "flood"})
        assert cmd == Mute("5", timedelta(days=3), "flood")

    def test_mute_default_duration(self):
        assert decode_command("mute", {"user_id": "5"}).duration == timedelta(hours=24)

    @pytest.mark.parametrize("bad", ["3x", "0h", "h", "-1d", "1.5h"])
    def test_mute_bad_duration(self, bad):
        with pytest.raises(InvalidInput):
            decode_command("mute", {"user_id": "5", "duration": bad})

    def test_client_types(self):
        cmd = decode_command("ban", {"user_id": "5", "client_types": "Slack, discord"})
        assert cmd == Ban("5", "No reason provided", client_types=("discord", "slack"))

    def test_promote_role(self):
        assert decode_command("promote", {"user_id": "5", "role": "admin"}) == Promote("5", Role.ADMIN)

    def test_promote_to_user_rejected(self):
        with pytest.raises(InvalidInput):
            decode_command("promote", {"user_id": "5", "role": "user"})

    def test_demote_to_super_admin_rejected(self):
        with pytest.raises(InvalidInput):
            decode_command("demote", {"user_id": "5", "role": "super_admin"})

    def test_bad_role_name(self):
        with pytest.raises(InvalidInput):
            decode_command("promote", {"user_id": "5", "role": "boss"})

    @pytest.mark.parametrize("bad", ["abc", "0", "-4", ""])
    def test_bad_comment_id(self, bad):
        with pytest.raises(InvalidInput):
            decode_command("pin", {"comment_id": bad})

    def test_report(self):
        cmd = decode_command("report", {"comment_id": "7", "reason": "SPAM", "notes": "  links  "})
        assert cmd == Report(7, "spam", "links")

    def test_resolve_default_and_invalid(self):
        assert decode_command("resolve", {"comment_id": "7", "reporter_id": "20"}) == Resolve(7, "20")
        with pytest.raises(InvalidInput):
            decode_command("resolve", {"comment_id": "7", "reporter_id": "20", "resolution": "maybe"})

    def test_queue_limit_capped(self):
        assert decode_command("queue", {"limit": "500"}) == Queue(limit=100)
        assert decode_command("queue", {}) == Queue()

    def test_log_target(self):
        assert decode_command("log", {"limit": "5", "target": "42"}) == Log(limit=5, target="42")

    def test_register(self):
        cmd = decode_command("register", {"client_type": "Slack", "user_id": "5", "username": " alice "})
        assert cmd == Register("slack", "5", "alice")

    @pytest.mark.parametrize("bad", ["sl ack", "x" * 33, "dis-cord"])
    def test_register_bad_platform(self, bad):
        with pytest.raises(InvalidInput, match="Invalid platform"):
            decode_command("register", {"client_type": bad, "user_id": "5"})

    def test_track(self):
        cmd = decode_command("track", {"comment_id": "3", "client_type": "discord", "author_id": "10"})
        assert cmd == Track(3, "discord", "10")

    def test_set_threshold(self):
        assert decode_command("set", {"key": "AUTO_BAN_THRESHOLD", "value": "7"}) == SetConfig(
            "auto_ban_threshold", "7"
        )

    @pytest.mark.parametrize("value", ["0", "-2", "ten"])
    def test_set_bad_threshold(self, value):
        with pytest.raises(InvalidInput):
            decode_command("set", {"key": "auto_mute_threshold", "value": value})

    def test_set_reporting_switch(self):
        assert decode_command("set", {"key": "reporting_enabled", "value": "OFF"}).value == "false"
        with pytest.raises(InvalidInput):
            decode_command("set", {"key": "reporting_enabled", "value": "maybe"})

    def test_role_lists_not_settable(self):
        with pytest.raises(InvalidInput, match="Cannot set"):
            decode_command("set", {"key": "admin_users", "value": "[]"})


class TestParseArgs:
    def test_reason_swallows_rest(self):
        assert parse_args("warn", ["5", "repeated", "spam", "links"]) == {
            "user_id": "5",
            "reason": "repeated spam links",
        }

    def test_mute_with_duration(self):
        assert parse_args("mute", ["5", "12h", "flooding"]) == {
            "user_id": "5",
            "duration": "12h",
            "reason": "flooding",
        }

    def test_mute_without_duration(self):
        assert parse_args("mute", ["5", "flooding", "chat"]) == {"user_id": "5", "reason": "flooding chat"}

    def test_only_option(self):
        params = parse_args("ban", ["5", "--only=reddit", "spam"])
        assert params == {"user_id": "5", "reason": "spam", "client_types": "reddit"}

    def test_resolve(self):
        params = parse_args("resolve", ["7", "20", "dismissed", "not", "spam"])
        assert decode_command("resolve", params) == Resolve(7, "20", "dismissed", "not spam")

    def test_missing_args_left_out(self):
        assert parse_args("status", []) == {}
        with pytest.raises(InvalidInput):
            decode_command("status", parse_args("status", []))

    def test_track_content_swallows_rest(self):
        params = parse_args("track", ["3", "discord", "10", "buy", "followers"])
        assert decode_command("track", params) == Track(3, "discord", "10", "buy followers")

    def test_register_without_username(self):
        assert parse_args("register", ["reddit", "5"]) == {"client_type": "reddit", "user_id": "5"}
