import logging

import pytest

from drainer.core.config.destination import (
    DEFAULT_KAFKA_ADDRS,
    AdjustContext,
    adjust_sync_policy,
    adjust_target,
    collapse_worker_count,
)
from drainer.core.config.models import (
    BrokerTarget,
    FileTarget,
    SqlTarget,
    SyncPolicy,
    TableName,
    build_target,
)
from drainer.core.exceptions import ConfigurationError, DiscoveryError


class FakeDiscovery:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def kafka_urls(self, connection_string, timeout):
        self.calls.append((connection_string, timeout))
        if self.error is not None:
            raise self.error
        return self.result


def _policy(kind, to=None, **kw):
    return SyncPolicy(kind=kind, target=build_target(kind, to or {}), **kw)


@pytest.mark.parametrize(
    "kind,disable_dispatch,expected_workers,expected_dispatch",
    [
        ("mysql", False, 16, False),
        ("tidb", False, 16, False),
        ("mysql", True, 1, True),
        ("file", False, 1, True),
        ("pb", False, 1, True),
        ("kafka", False, 1, True),
    ],
)
def test_worker_collapse(kind, disable_dispatch, expected_workers, expected_dispatch):
    policy = _policy(kind, worker_count=16, disable_dispatch=disable_dispatch)
    out = adjust_sync_policy(policy, AdjustContext(environ={}))
    assert out.worker_count == expected_workers
    assert out.disable_dispatch == expected_dispatch


def test_collapse_keeps_other_fields():
    policy = SyncPolicy(kind="file", worker_count=8, txn_batch=7)
    out = collapse_worker_count(policy)
    assert out.txn_batch == 7
    assert policy.worker_count == 8  # 入参不被修改


def test_pb_and_file_are_equivalent(tmp_path):
    ctx = AdjustContext(data_dir=str(tmp_path), environ={})
    pb = adjust_sync_policy(_policy("pb"), ctx)
    fl = adjust_sync_policy(_policy("file"), ctx)
    assert pb == fl
    assert pb.kind == "file"
    assert pb.target == FileTarget(dir=str(tmp_path))


def test_file_dir_kept_when_set():
    out = adjust_target(FileTarget(dir="/out"), AdjustContext(data_dir="/data", environ={}))
    assert out.dir == "/out"


def test_kafka_defaults():
    out = adjust_target(BrokerTarget(), AdjustContext(environ={}))
    assert out == BrokerTarget(
        addrs=DEFAULT_KAFKA_ADDRS, version="0.8.2.0", max_messages=1024
    )


def test_kafka_addrs_from_env():
    out = adjust_target(BrokerTarget(), AdjustContext(environ={"KAFKA_ADDRS": "k1:9092,k2:9092"}))
    assert out.addrs == "k1:9092,k2:9092"


def test_kafka_explicit_values_kept():
    target = BrokerTarget(addrs="k:1", version="2.1.0", max_messages=10)
    out = adjust_target(target, AdjustContext(environ={"KAFKA_ADDRS": "other:9092"}))
    assert out == target


def test_kafka_discovery_overrides_addrs():
    fake = FakeDiscovery(result="b1:9092,b2:9092")
    ctx = AdjustContext(environ={}, discovery=fake, discovery_timeout=3.0)
    out = adjust_target(BrokerTarget(addrs="ignored:1", zookeeper_addrs="zk:2181"), ctx)
    assert out.addrs == "b1:9092,b2:9092"
    assert fake.calls == [("zk:2181", 3.0)]


def test_kafka_discovery_failure_propagates():
    fake = FakeDiscovery(error=DiscoveryError("zk down"))
    ctx = AdjustContext(environ={}, discovery=fake)
    with pytest.raises(DiscoveryError):
        adjust_sync_policy(_policy("kafka", {"zookeeper-addrs": "zk:2181"}), ctx)


def test_sql_defaults_without_env():
    out = adjust_target(SqlTarget(), AdjustContext(environ={}))
    assert out == SqlTarget(host="localhost", port=3306, user="root", password="")


def test_sql_defaults_from_env():
    env = {
        "MYSQL_HOST": "db.local",
        "MYSQL_PORT": "4000",
        "MYSQL_USER": "binlog",
        "MYSQL_PSWD": "secret",
    }
    out = adjust_target(SqlTarget(), AdjustContext(environ=env))
    assert out == SqlTarget(host="db.local", port=4000, user="binlog", password="secret")


def test_sql_non_numeric_env_port_falls_back():
    out = adjust_target(SqlTarget(), AdjustContext(environ={"MYSQL_PORT": "abc"}))
    assert out.port == 3306


def test_sql_file_values_win_over_env():
    target = SqlTarget(host="h", port=1, user="u", password="p")
    out = adjust_target(target, AdjustContext(environ={"MYSQL_HOST": "env"}))
    assert out == target


def test_unknown_kind_is_left_untouched(caplog):
    caplog.set_level(logging.WARNING)
    policy = SyncPolicy(kind="postgres", target=None, worker_count=4)
    out = adjust_sync_policy(policy, AdjustContext(environ={}))
    assert out.kind == "postgres"
    assert out.target is None
    assert out.worker_count == 4
    assert any(
        getattr(r, "event", None) == "config.adjust.unknown_kind" for r in caplog.records
    )


def test_names_are_lowercased():
    policy = SyncPolicy(
        kind="mysql",
        target=SqlTarget(),
        do_tables=(TableName("Foo", "Bar"),),
        do_dbs=("Db1",),
        ignore_tables=(TableName("A", "B"),),
        ignore_schemas=("MySQL",),
    )
    out = adjust_sync_policy(policy, AdjustContext(environ={}))
    assert out.do_tables == (TableName("foo", "bar"),)
    assert out.do_dbs == ("db1",)
    assert out.ignore_tables == (TableName("a", "b"),)
    assert out.ignore_schemas == ("mysql",)


def test_build_target_reads_only_selected_keys():
    to = {"host": "h", "dir": "/d", "kafka-addrs": "k:1"}
    assert build_target("mysql", to) == SqlTarget(host="h")
    assert build_target("file", to) == FileTarget(dir="/d")
    assert build_target("kafka", to) == BrokerTarget(addrs="k:1")
    assert build_target("oracle", to) is None


@pytest.mark.parametrize(
    "kind,expected",
    [
        ("kafka", BrokerTarget(addrs=DEFAULT_KAFKA_ADDRS, version="0.8.2.0", max_messages=1024)),
        ("pb", FileTarget(dir="/data")),
        ("tidb", SqlTarget(host="localhost", port=3306, user="root", password="")),
    ],
)
def test_missing_target_is_derived_from_kind(kind, expected, caplog):
    caplog.set_level(logging.WARNING)
    out = adjust_sync_policy(SyncPolicy(kind=kind), AdjustContext(data_dir="/data", environ={}))
    assert out.target == expected
    assert not any(
        getattr(r, "event", None) == "config.adjust.unknown_kind" for r in caplog.records
    )


@pytest.mark.parametrize(
    "kind,target",
    [
        ("file", SqlTarget()),
        ("kafka", FileTarget(dir="/out")),
        ("mysql", BrokerTarget()),
    ],
)
def test_target_not_matching_kind_is_rejected(kind, target):
    with pytest.raises(ConfigurationError) as ei:
        adjust_sync_policy(SyncPolicy(kind=kind, target=target), AdjustContext(environ={}))
    assert ei.value.context["kind"] == kind
    assert ei.value.context["target"] == type(target).__name__


def test_zookeeper_discovery_is_the_default(monkeypatch):
    fake = FakeDiscovery(result="zkb:9092")
    monkeypatch.setattr(
        "drainer.core.config.destination.ZookeeperBrokerDiscovery", lambda: fake
    )
    out = adjust_target(BrokerTarget(zookeeper_addrs="zk:2181"), AdjustContext(environ={}))
    assert out.addrs == "zkb:9092"
    assert fake.calls == [("zk:2181", 5.0)]
