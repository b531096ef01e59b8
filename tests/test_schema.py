import pytest

from drainer.core.config.models import TableName
from drainer.core.config.schema import (
    ENV_PREFIX,
    build_schema,
    file_sections,
    parse_bool,
    parse_int,
    parse_name_list,
    parse_str,
    parse_table_list,
)


def test_build_schema_returns_fresh_mapping():
    a = build_schema()
    b = build_schema()
    assert a == b
    assert a is not b
    a.pop("addr")
    assert "addr" in build_schema()


def test_defaults_match_drainer():
    s = build_schema()
    assert s["addr"].default == "0.0.0.0:8249"
    assert s["data-dir"].default == "data.drainer"
    assert s["pd-urls"].default == "http://127.0.0.1:2379"
    assert s["syncer.worker-count"].default == 16
    assert s["syncer.txn-batch"].default == 20
    assert s["syncer.db-type"].default == "mysql"
    assert s["cache-binlog-count"].default == 16 << 12
    assert s["syncer.ignore-schemas"].default == (
        "INFORMATION_SCHEMA",
        "PERFORMANCE_SCHEMA",
        "mysql",
    )


def test_env_keys_follow_flag_names():
    s = build_schema()
    assert s["syncer.txn-batch"].env_key(ENV_PREFIX) == "BINLOG_SERVER_TXN_BATCH"
    assert s["syncer.worker-count"].env_key(ENV_PREFIX) == "BINLOG_SERVER_C"
    assert s["log-level"].env_key(ENV_PREFIX) == "BINLOG_SERVER_L"
    # 内部/废弃参数与仅配置文件的配置项不可由环境变量覆盖
    assert s["config"].env_key(ENV_PREFIX) is None
    assert s["version"].env_key(ENV_PREFIX) is None
    assert s["log-rotate"].env_key(ENV_PREFIX) is None
    assert s["syncer.to.host"].env_key(ENV_PREFIX) is None


def test_option_strings():
    s = build_schema()
    assert s["syncer.worker-count"].option_strings == ("-c",)
    assert s["node-id"].option_strings == ("--node-id", "-node-id")
    assert s["help"].option_strings == ("-h", "--help", "-help")


def test_file_sections():
    assert file_sections(build_schema()) == {"syncer", "syncer.to", "security"}


def test_flag_only_settings_have_no_file_key():
    s = build_schema()
    for name in ("config", "version", "help", "log-rotate"):
        assert s[name].file_key is None


@pytest.mark.parametrize("text", ["1", "t", "T", "TRUE", "true", "True"])
def test_parse_bool_true(text):
    assert parse_bool(text) is True


@pytest.mark.parametrize("text", ["0", "f", "F", "FALSE", "false", "False"])
def test_parse_bool_false(text):
    assert parse_bool(text) is False


def test_parse_bool_rejects_other_values():
    with pytest.raises(ValueError):
        parse_bool("yes")


def test_parse_int_rejects_bool_and_garbage():
    assert parse_int(" 42 ") == 42
    with pytest.raises(TypeError):
        parse_int(True)
    with pytest.raises(ValueError):
        parse_int("4x")


def test_parse_str_accepts_yaml_scalars():
    assert parse_str("a") == "a"
    assert parse_str(2.0) == "2.0"
    with pytest.raises(TypeError):
        parse_str(None)


def test_parse_name_list():
    assert parse_name_list("a, b,,c ") == ("a", "b", "c")
    assert parse_name_list(["x", " y "]) == ("x", "y")
    assert parse_name_list("") == ()


def test_parse_table_list():
    tables = parse_table_list([{"db-name": "Foo", "tbl-name": "Bar"}, {"db-name": "x"}])
    assert tables == (TableName("Foo", "Bar"), TableName("x", ""))
    with pytest.raises(ValueError):
        parse_table_list([{"db-name": "a", "table": "b"}])
    with pytest.raises(TypeError):
        parse_table_list("a.b")
