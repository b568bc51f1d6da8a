import pytest

from etcdmembership.models import StaticPodOperatorSpec
from etcdmembership.unsupported_override import is_unsupported_unsafe_etcd, parse_bool


@pytest.mark.parametrize(
    "raw, want",
    [
        (b"useUnsupportedUnsafeNonHANonProductionUnstableEtcd: true", True),
        (b'useUnsupportedUnsafeNonHANonProductionUnstableEtcd: "true"', True),
        (b'useUnsupportedUnsafeNonHANonProductionUnstableEtcd: "false"', False),
        (b'{"useUnsupportedUnsafeNonHANonProductionUnstableEtcd": true}', True),
        (b'{"useUnsupportedUnsafeNonHANonProductionUnstableEtcd": "true"}', True),
        (b'{"useUnsupportedUnsafeNonHANonProductionUnstableEtcd": "false"}', False),
    ],
)
def test_is_unsupported_unsafe_etcd(raw, want):
    spec = StaticPodOperatorSpec(unsupported_config_overrides=raw)
    assert is_unsupported_unsafe_etcd(spec) is want


def test_random_string_value_is_an_error():
    spec = StaticPodOperatorSpec(
        unsupported_config_overrides=b'{"useUnsupportedUnsafeNonHANonProductionUnstableEtcd": "randomValue"}'
    )
    with pytest.raises(ValueError):
        is_unsupported_unsafe_etcd(spec)


def test_no_overrides_is_false():
    assert is_unsupported_unsafe_etcd(StaticPodOperatorSpec()) is False


def test_other_keys_only_is_false():
    spec = StaticPodOperatorSpec(unsupported_config_overrides='{"other": true}')
    assert is_unsupported_unsafe_etcd(spec) is False


def test_non_bool_non_string_value_is_false():
    spec = StaticPodOperatorSpec(
        unsupported_config_overrides=b"useUnsupportedUnsafeNonHANonProductionUnstableEtcd: 1"
    )
    assert is_unsupported_unsafe_etcd(spec) is False


def test_non_mapping_config_is_an_error():
    spec = StaticPodOperatorSpec(unsupported_config_overrides=b"[1, 2]")
    with pytest.raises(ValueError):
        is_unsupported_unsafe_etcd(spec)


@pytest.mark.parametrize("text", ["1", "t", "T", "TRUE", "true", "True"])
def test_parse_bool_true(text):
    assert parse_bool(text) is True


@pytest.mark.parametrize("text", ["0", "f", "F", "FALSE", "false", "False"])
def test_parse_bool_false(text):
    assert parse_bool(text) is False


@pytest.mark.parametrize("text", ["randomValue", "yes", "", "tRUE"])
def test_parse_bool_invalid(text):
    with pytest.raises(ValueError):
        parse_bool(text)