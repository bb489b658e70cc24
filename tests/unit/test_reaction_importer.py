"""Unit tests for the reaction importer and placeholder reconciliation."""

from __future__ import annotations

import logging
from collections import Counter

import pytest

from chatsdk_migrator.constants import DO_NOTHING_CONFLICT
from chatsdk_migrator.services.channel_importer import ChannelImporter
from chatsdk_migrator.services.message_importer import MessageImporter
from chatsdk_migrator.services.reaction_importer import ReactionImporter, placeholder_counts
from chatsdk_migrator.types import SourceChannel, SourceMessage

CID = "messaging:general"


@pytest.fixture()
def general(importer_args, stream_records):
    channel = SourceChannel.from_api(stream_records.channel("messaging", "general", ["alice", "bob"]))
    ChannelImporter(*importer_args).import_batch([channel])
    return importer_args[2].get_channel(CID)


@pytest.fixture()
def import_page(importer_args, general):
    """Import a page of raw messages, then its reactions; return the reaction count."""

    def _import(*raw_messages, dry_run=False):
        batch = [SourceMessage.from_api(m) for m in raw_messages]
        MessageImporter(*importer_args).import_batch(CID, batch, dry_run=dry_run)
        return ReactionImporter(*importer_args).import_batch(CID, batch, dry_run=dry_run)

    return _import


class TestPlaceholderCounts:
    def test_group_total_above_detailed(self, stream_records):
        message = SourceMessage.from_api(stream_records.thumbs_up_message("m1", "alice", 1))
        assert placeholder_counts(message) == {"👍": 3}

    def test_falls_back_to_reaction_counts(self, stream_records):
        message = SourceMessage.from_api(
            stream_records.message("m1", "alice", 1, reaction_counts={"🎉": 2})
        )
        assert placeholder_counts(message) == {"🎉": 2}

    def test_no_placeholders_when_detail_is_complete(self, stream_records):
        message = SourceMessage.from_api(
            stream_records.message(
                "m1",
                "alice",
                1,
                latest_reactions=[{"type": "like", "user_id": "bob"}],
                reaction_groups={"like": {"count": 1}},
            )
        )
        assert placeholder_counts(message) == {}


class TestReactionImporter:
    def test_detailed_reactions_plus_placeholders(self, import_page, in_memory_db, id_mapping, stream_records):
        count = import_page(stream_records.thumbs_up_message("m1", "alice", 1))

        assert count == 5
        reactions = in_memory_db.rows("reaction")
        assert {r["emoji"] for r in reactions} == {"👍"}
        assert Counter(r["user_id"] for r in reactions) == {"alice": 4, "bob": 1}
        assert len({r["id"] for r in reactions}) == 5
        message = in_memory_db.find("message", id=id_mapping.get_message("m1"))[0]
        assert message["reaction_count"] == 5

    def test_missing_emoji_defaults_to_thumbs_up(self, import_page, in_memory_db, stream_records):
        import_page(
            stream_records.message("m1", "alice", 1, latest_reactions=[{"user_id": "bob"}])
        )
        assert [r["emoji"] for r in in_memory_db.rows("reaction")] == ["👍"]

    def test_reaction_without_user_is_attributed_to_author(self, import_page, in_memory_db, stream_records):
        import_page(
            stream_records.message("m1", "bob", 1, latest_reactions=[{"type": "😂"}])
        )
        assert in_memory_db.rows("reaction")[0]["user_id"] == "bob"

    def test_placeholders_without_author_use_unknown(self, import_page, in_memory_db, stream_records):
        import_page(stream_records.message("m1", None, 1, reaction_counts={"🎉": 2}))
        assert [r["user_id"] for r in in_memory_db.rows("reaction")] == ["unknown", "unknown"]

    def test_messages_without_reactions_are_skipped(self, import_page, in_memory_db, stream_records):
        assert import_page(stream_records.message("m1", "alice", 1)) == 0
        assert in_memory_db.rows("reaction") == []
        assert "reaction_count" not in in_memory_db.update_calls

    def test_insert_uses_do_nothing(self, import_page, in_memory_db, stream_records):
        import_page(stream_records.thumbs_up_message("m1", "alice", 1))
        conflicts = {call[0]: call[3] for call in in_memory_db.insert_calls}
        assert conflicts["reaction"] == DO_NOTHING_CONFLICT

    def test_replay_inserts_nothing(self, import_page, in_memory_db, stream_records):
        raw = stream_records.thumbs_up_message("m1", "alice", 1)
        assert import_page(raw) == 5
        assert import_page(raw) == 0
        assert len(in_memory_db.rows("reaction")) == 5

    def test_unmapped_message_is_skipped(self, importer_args, in_memory_db, general, caplog, stream_records):
        message = SourceMessage.from_api(stream_records.thumbs_up_message("never-imported", "alice", 1))
        with caplog.at_level(logging.WARNING, logger="chatsdk_migrator"):
            count = ReactionImporter(*importer_args).import_batch(CID, [message])
        assert count == 0
        assert in_memory_db.rows("reaction") == []
        assert "never-imported" in caplog.text

    def test_unmapped_channel_is_skipped(self, importer_args, in_memory_db, stream_records):
        message = SourceMessage.from_api(stream_records.thumbs_up_message("m1", "alice", 1))
        assert ReactionImporter(*importer_args).import_batch("team:nowhere", [message]) == 0
        assert in_memory_db.write_calls == 0

    def test_dry_run_counts_without_writing(self, import_page, in_memory_db, progress, stream_records):
        writes_before = in_memory_db.write_calls
        count = import_page(stream_records.thumbs_up_message("m1", "alice", 1), dry_run=True)

        assert count == 5
        assert in_memory_db.write_calls == writes_before
        assert progress.get_progress().reactions_imported == 5
