"""
Tests for local mirror stores and optimistic sync.
"""

import copy

import pytest

from fieldops.services.mirror_store import MirrorStore, OptimisticSync, TicketMirror


def make_mirror():
    return MirrorStore(
        "tickets",
        initial=[
            {"id": "a", "street": "1 Elm", "onSite": False},
            {"id": "b", "street": "2 Oak", "onSite": False},
            {"id": "c", "street": "3 Pine", "onSite": True},
        ],
    )


class TestMirrorStore:
    """Tests for MirrorStore mutations."""

    def test_patch_non_matching_id_changes_nothing(self):
        mirror = make_mirror()
        before = copy.deepcopy(list(mirror.items))
        version = mirror.version

        assert mirror.patch("zzz", {"onSite": True}) is False

        assert list(mirror.items) == before
        assert mirror.ids() == ["a", "b", "c"]
        assert mirror.version == version

    def test_patch_merges_only_matching_entity(self):
        mirror = make_mirror()
        untouched = mirror.get("a")

        mirror.patch("b", {"onSite": True, "city": "Austin"})

        assert mirror.get("b") == {"id": "b", "street": "2 Oak", "onSite": True, "city": "Austin"}
        assert mirror.get("a") is untouched
        assert mirror.ids() == ["a", "b", "c"]

    def test_patch_builds_new_entity(self):
        mirror = make_mirror()
        old = mirror.get("b")

        mirror.patch("b", {"onSite": True})

        assert old["onSite"] is False
        assert mirror.get("b") is not old

    def test_add_appends(self):
        mirror = make_mirror()
        mirror.add({"id": "d", "street": "4 Ash"})
        assert mirror.ids() == ["a", "b", "c", "d"]

    def test_add_existing_id_replaces_in_place(self):
        mirror = make_mirror()
        mirror.add({"id": "a", "street": "changed"})
        assert mirror.ids() == ["a", "b", "c"]
        assert mirror.get("a") == {"id": "a", "street": "changed"}

    def test_remove(self):
        mirror = make_mirror()
        assert mirror.remove("b") is True
        assert mirror.ids() == ["a", "c"]
        assert "b" not in mirror

    def test_remove_missing_is_noop(self):
        mirror = make_mirror()
        version = mirror.version
        assert mirror.remove("nope") is False
        assert mirror.version == version
        assert len(mirror) == 3

    def test_replace_all_deduplicates(self):
        mirror = make_mirror()
        mirror.replace_all([
            {"id": "x", "n": 1},
            {"id": "y", "n": 1},
            {"id": "x", "n": 2},
        ])
        assert mirror.ids() == ["x", "y"]
        assert mirror.get("x") == {"id": "x", "n": 2}

    def test_reset_restores_initial_state(self):
        mirror = make_mirror()
        mirror.remove("a")
        mirror.add({"id": "z"})
        mirror.reset()
        assert mirror.ids() == ["a", "b", "c"]

    def test_listener_is_called_synchronously(self):
        mirror = make_mirror()
        seen = []
        unsubscribe = mirror.listen(lambda m: seen.append(m.ids()))

        mirror.remove("a")
        unsubscribe()
        mirror.remove("b")

        assert seen == [["b", "c"]]

    def test_failing_listener_does_not_break_mutation(self):
        mirror = make_mirror()

        def boom(_):
            raise RuntimeError("listener failed")

        mirror.listen(boom)
        assert mirror.remove("a") is True
        assert mirror.ids() == ["b", "c"]


class TestTicketMirror:
    """Tests for ticket status helpers."""

    def test_toggles(self):
        mirror = TicketMirror(initial=[{"id": "t1", "remediationRequired": False}])

        assert mirror.toggle_remediation_required("t1") is True
        assert mirror.get("t1")["remediationRequired"] is True

        mirror.toggle_site_complete("t1")
        assert mirror.get("t1")["siteComplete"] is True

        mirror.set_equipment_on_site("t1", True)
        assert mirror.get("t1")["equipmentOnSite"] is True

    def test_toggle_unknown_ticket(self):
        mirror = TicketMirror()
        assert mirror.toggle_site_complete("missing") is False

    def test_update_status(self):
        mirror = TicketMirror(initial=[{"id": "t1", "onSite": False}])
        mirror.update_status("t1", {"onSite": True, "inspectionComplete": True})
        assert mirror.get("t1") == {"id": "t1", "onSite": True, "inspectionComplete": True}


class TestOptimisticSync:
    """Tests for local apply then remote write."""

    @pytest.mark.asyncio
    async def test_patch_applies_remote_document(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)
        seen_during_write = {}

        async def write():
            seen_during_write.update(mirror.get("a"))
            return {"id": "a", "street": "1 Elm", "onSite": True, "updatedAt": "now"}

        result = await sync.patch("a", {"onSite": True}, write)

        assert seen_during_write["onSite"] is True
        assert result["updatedAt"] == "now"
        assert mirror.get("a")["updatedAt"] == "now"

    @pytest.mark.asyncio
    async def test_patch_rolls_back_on_failure(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)
        original = dict(mirror.get("a"))

        async def write():
            raise ConnectionError("offline")

        with pytest.raises(ConnectionError):
            await sync.patch("a", {"onSite": True}, write)

        assert mirror.get("a") == original
        assert mirror.ids() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_patch_removes_entity_gone_remotely(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)

        async def write():
            return None

        assert await sync.patch("b", {"onSite": True}, write) is None
        assert "b" not in mirror

    @pytest.mark.asyncio
    async def test_add_replaces_provisional_entity(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)

        async def write():
            return {"id": "server-1", "street": "9 Birch"}

        await sync.add({"id": "tmp-1", "street": "9 Birch"}, write)

        assert "tmp-1" not in mirror
        assert mirror.ids() == ["a", "b", "c", "server-1"]

    @pytest.mark.asyncio
    async def test_add_failure_removes_provisional_entity(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)

        async def write():
            raise RuntimeError("rejected")

        with pytest.raises(RuntimeError):
            await sync.add({"id": "tmp-1"}, write)
        assert mirror.ids() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_remove_failure_restores_order(self):
        mirror = make_mirror()
        sync = OptimisticSync(mirror)

        async def write():
            raise RuntimeError("rejected")

        with pytest.raises(RuntimeError):
            await sync.remove("b", write)
        assert mirror.ids() == ["a", "b", "c"]
