"""Tests for the wave scheduler."""

import asyncio

import pytest

from conftest import FakeDirectory, group, role, unit, user
from membership_crawler.config import CrawlConfig
from membership_crawler.crawler import MembershipCrawler, MembershipRecord, parse_seeds
from membership_crawler.reporting import MemoryRecordSink


def crawl(directory, sink, seeds, **config):
    crawler = MembershipCrawler(directory, sink, CrawlConfig(**config))
    stats = asyncio.run(crawler.run(seeds))
    return crawler, stats


class TestScenario:
    """alice / bob / carol walkthrough."""

    def test_tables(self, scenario_directory, sink):
        _, stats = crawl(scenario_directory, sink, ["alice@contoso.com"])

        assert sink.column("users") == ["alice", "bob"]
        assert sink.rows["groups"] == [["G1", "Engineering"]]
        assert sink.rows["roles"] == [["R1", "Admins"]]
        assert sink.pairs("groups_membership") == {
            ("G1", "alice"), ("G1", "bob"), ("G1", "carol"),
        }
        assert sink.pairs("roles_membership") == {("R1", "alice")}
        assert sink.rows["administrativeunits"] == []
        assert sink.rows["errors"] == []
        assert stats.errors == 0
        assert stats.waves == 2

    def test_user_rows_keep_all_fields(self, scenario_directory, sink):
        crawl(scenario_directory, sink, ["alice"])
        assert sink.rows["users"][0] == ["alice", "Member", "alice@contoso.com", "Alice"]

    def test_member_without_user_type_is_not_expanded(self, scenario_directory, sink):
        crawl(scenario_directory, sink, ["alice"])
        assert "carol" not in scenario_directory.membership_calls
        assert "carol" not in sink.column("users")


class TestSeeds:

    def test_no_seed_resolves(self, sink):
        directory = FakeDirectory()
        _, stats = crawl(directory, sink, ["ghost", "nobody"])

        assert stats.no_input
        assert stats.seeds_resolved == 0
        assert sorted(stats.unresolved_seeds) == ["ghost", "nobody"]
        assert all(rows == [] for rows in sink.rows.values())
        assert not directory.membership_calls

    def test_unresolved_seed_is_skipped(self, scenario_directory, sink):
        _, stats = crawl(scenario_directory, sink, ["ghost", "alice"])

        assert not stats.no_input
        assert stats.unresolved_seeds == ["ghost"]
        assert "bob" in sink.column("users")
        # seed failures are reported to the operator, not to the error stream
        assert sink.rows["errors"] == []

    def test_same_user_by_id_and_upn(self, scenario_directory, sink):
        _, stats = crawl(scenario_directory, sink, ["alice", "alice@contoso.com", " alice "])

        assert sink.column("users").count("alice") == 1
        assert scenario_directory.membership_calls["alice"] == 1
        assert stats.seeds_resolved == 3

    def test_blank_seeds_ignored(self, scenario_directory, sink):
        _, stats = crawl(scenario_directory, sink, ["", "  ", "alice"])
        assert stats.seeds_requested == 1

    def test_parse_seeds(self):
        assert parse_seeds("a, b,\nc\n\n,") == ["a", "b", "c"]


def shared_group_directory(size=30):
    """size users all in G1 and R1; G1 lists every one of them."""
    users = {f"u{i}": user(f"u{i}") for i in range(size)}
    return FakeDirectory(
        users=users,
        memberships={
            uid: [group("G1", "Everyone"), role("R1", "Readers"), unit("AU1")]
            for uid in users
        },
        members={"G1": list(users.values())},
    )


class TestInvariants:

    def test_each_object_expanded_at_most_once(self, sink):
        directory = shared_group_directory()
        crawl(directory, sink, list(directory.users), max_parallel=8)

        assert directory.member_calls == {"G1": 1}
        assert all(count == 1 for count in directory.membership_calls.values())
        assert len(directory.membership_calls) == 30

    def test_terminal_objects_recorded_once_edges_always(self, sink):
        directory = shared_group_directory()
        _, stats = crawl(directory, sink, list(directory.users))

        assert sink.rows["groups"] == [["G1", "Everyone"]]
        assert sink.rows["roles"] == [["R1", "Readers"]]
        assert sink.rows["administrativeunits"] == [["AU1"]]
        assert len(sink.rows["roles_membership"]) == 30
        assert len(sink.rows["groups_membership"]) == 30
        assert stats.role_edges == 30
        assert stats.group_edges == 30

    def test_concurrency_bounded(self, sink):
        directory = shared_group_directory(size=50)
        directory.delay = 0.005
        crawl(directory, sink, list(directory.users), max_parallel=4)

        assert 1 < directory.max_in_flight <= 4

    def test_cycle_terminates(self, sink):
        # a in G1, G1 holds b, b in G2, G2 holds a and c, c in G1
        directory = FakeDirectory(
            users={"a": user("a")},
            memberships={
                "a": [group("G1")],
                "b": [group("G2")],
                "c": [group("G1"), group("G2")],
            },
            members={
                "G1": [user("a"), user("b"), user("c")],
                "G2": [user("a"), user("c")],
            },
        )
        _, stats = crawl(directory, sink, ["a"])

        assert sorted(sink.column("users")) == ["a", "b", "c"]
        assert sorted(sink.column("groups")) == ["G1", "G2"]
        assert directory.member_calls == {"G1": 1, "G2": 1}
        assert stats.waves == 2

    def test_rerun_is_idempotent(self):
        directory = shared_group_directory()
        first, second = MemoryRecordSink(), MemoryRecordSink()
        crawl(directory, first, ["u3", "u7"], max_parallel=3)
        crawl(shared_group_directory(), second, ["u3", "u7"], max_parallel=11)

        for stream in first.rows:
            assert sorted(map(tuple, first.rows[stream])) == sorted(map(tuple, second.rows[stream]))


class TestFailures:

    def test_failed_user_isolated(self, sink):
        directory = FakeDirectory(
            users={"x": user("x"), "y": user("y")},
            memberships={"x": [role("R1")], "y": [role("R2"), group("G1")]},
            members={"G1": [user("y"), user("z")]},
            failing={"x"},
        )
        _, stats = crawl(directory, sink, ["x", "y"])

        assert sink.rows["errors"] == [["x", "Insufficient privileges"]]
        assert ("R1", "x") not in sink.pairs("roles_membership")
        assert sink.pairs("roles_membership") == {("R2", "y")}
        assert "z" in sink.column("users")
        assert directory.membership_calls["x"] == 1
        assert stats.errors == 1

    def test_failed_group_isolated(self, sink):
        directory = FakeDirectory(
            users={"a": user("a")},
            memberships={"a": [group("G1"), group("G2")]},
            members={"G1": [user("b")], "G2": [user("c")]},
            failing={"G1"},
        )
        crawl(directory, sink, ["a"])

        assert sink.rows["errors"] == [["G1", "Insufficient privileges"]]
        assert sorted(sink.column("groups")) == ["G1", "G2"]
        assert sink.pairs("groups_membership") == {("G2", "c")}
        assert directory.member_calls["G1"] == 1

    def test_stream_failure_keeps_edges_already_seen(self, sink):
        directory = FakeDirectory(
            users={"a": user("a")},
            memberships={"a": [group("G1")]},
            members={"G1": [user("a"), user("b"), user("c")]},
            fail_after={"G1": 2},
        )
        crawl(directory, sink, ["a"])

        assert sink.pairs("groups_membership") == {("G1", "a"), ("G1", "b")}
        assert sink.rows["errors"] == [["G1", "Connection reset"]]
        # b was recorded before the failure, so it is still expanded
        assert directory.membership_calls["b"] == 1

    def test_unexpected_exception_is_isolated(self, sink):
        class Broken(FakeDirectory):
            async def get_memberships(self, object_id):
                if object_id == "x":
                    raise RuntimeError("boom")
                return await super().get_memberships(object_id)

        directory = Broken(
            users={"x": user("x"), "y": user("y")},
            memberships={"y": [role("R1")]},
        )
        crawl(directory, sink, ["x", "y"])

        assert sink.rows["errors"] == [["x", "boom"]]
        assert sink.pairs("roles_membership") == {("R1", "y")}

    def test_unknown_membership_kind_dropped(self, sink):
        directory = FakeDirectory(
            users={"a": user("a")},
            memberships={"a": [MembershipRecord("D1", "#microsoft.graph.device", "Laptop"), role("R1")]},
        )
        _, stats = crawl(directory, sink, ["a"])

        assert stats.anomalies == 1
        assert "D1" not in sink.column("roles") + sink.column("groups")
        assert sink.rows["errors"] == []

    def test_sink_failure_cancels_other_workers(self):
        class FullDisk(MemoryRecordSink):
            failed = False

            def append(self, stream, row):
                if stream == "roles" and not self.failed:
                    self.failed = True
                    raise OSError("No space left on device")
                super().append(stream, row)

        directory = shared_group_directory(size=12)
        directory.delay = 0.01
        crawler = MembershipCrawler(directory, FullDisk(), CrawlConfig(max_parallel=3))

        async def run():
            with pytest.raises(OSError):
                await crawler.run(list(directory.users))
            calls = sum(directory.membership_calls.values())
            await asyncio.sleep(0.1)
            return calls

        calls = asyncio.run(run())

        assert calls < 12
        assert sum(directory.membership_calls.values()) == calls
        assert directory.in_flight == 0


class TestStop:

    def test_stop_prevents_new_expansions(self, sink):
        directory = shared_group_directory(size=40)
        crawler = MembershipCrawler(directory, sink, CrawlConfig(max_parallel=2))

        async def run():
            task = asyncio.create_task(crawler.run(list(directory.users)))
            while not directory.membership_calls:
                await asyncio.sleep(0)
            crawler.stop()
            return await task

        stats = asyncio.run(run())

        assert sum(directory.membership_calls.values()) < 40
        assert not directory.member_calls
        assert stats.waves == 1

    def test_stop_reports_abandoned_work(self, sink, caplog):
        users = {f"u{i}": user(f"u{i}") for i in range(10)}
        directory = FakeDirectory(
            users=users,
            memberships={uid: [group(f"G{uid}")] for uid in users},
            members={f"G{uid}": [record] for uid, record in users.items()},
            delay=0.01,
        )
        crawler = MembershipCrawler(directory, sink, CrawlConfig(max_parallel=2))

        async def run():
            task = asyncio.create_task(crawler.run(list(users)))
            while sum(directory.membership_calls.values()) < 3:
                await asyncio.sleep(0)
            crawler.stop()
            return await task

        with caplog.at_level("WARNING", logger="membership_crawler"):
            stats = asyncio.run(run())

        assert not directory.member_calls
        assert stats.users_pending > 0
        assert stats.users_pending + stats.users_expanded == 10
        assert stats.groups_pending == stats.groups_recorded > 0
        assert sorted(crawler.user_frontier.drain()) == sorted(
            uid for uid in users if uid not in directory.membership_calls
        )
        message = next(r.getMessage() for r in caplog.records if "Crawl stopped" in r.getMessage())
        assert f"{stats.users_pending} user(s) and {stats.groups_pending} group(s)" in message


class TestProgress:

    def test_progress_logging_does_not_change_results(self, caplog):
        small, large = MemoryRecordSink(), MemoryRecordSink()
        with caplog.at_level("INFO", logger="membership_crawler"):
            crawl(shared_group_directory(), small, ["u1"], progress_interval=1)
        crawl(shared_group_directory(), large, ["u1"], progress_interval=0)

        assert any("Analyzed" in r.getMessage() for r in caplog.records)
        assert any("Busy enumerating group Everyone" in r.getMessage() for r in caplog.records)
        assert small.pairs("groups_membership") == large.pairs("groups_membership")
