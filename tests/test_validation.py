import pytest

from sshconn.errors import InvalidField
from sshconn.models import HostRecord
from sshconn.validation import (
    validate_address,
    validate_alias,
    validate_extra_options,
    validate_port,
    validate_record,
    validate_user,
)


@pytest.mark.parametrize("alias", ["", "two words", "tab\there", "web*", "db?", "!neg", "line\nbreak"])
def test_bad_aliases_are_rejected(alias):
    with pytest.raises(InvalidField) as excinfo:
        validate_alias(alias)
    assert excinfo.value.field == "alias"


def test_good_alias_passes():
    assert validate_alias("web-01.prod") == "web-01.prod"


@pytest.mark.parametrize("address", ["", "a b", "host..example", ".example.com", "example.com."])
def test_bad_addresses_are_rejected(address):
    with pytest.raises(InvalidField):
        validate_address(address)


def test_ipv6_and_hostnames_are_accepted():
    assert validate_address("2001:db8::1") == "2001:db8::1"
    assert validate_address("server.example.com") == "server.example.com"


def test_port_accepts_int_and_numeric_string():
    assert validate_port(None) is None
    assert validate_port(22) == 22
    assert validate_port("2222") == 2222
    assert validate_port(65535) == 65535


@pytest.mark.parametrize("port", [0, 65536, -1, "abc", "22a", True, 22.5])
def test_port_rejects_out_of_range_and_non_numbers(port):
    with pytest.raises(InvalidField):
        validate_port(port)


@pytest.mark.parametrize("user", ["", "a b", "root@host"])
def test_bad_users_are_rejected(user):
    with pytest.raises(InvalidField):
        validate_user(user)


def test_extra_options_rules():
    validate_extra_options({"ForwardAgent": "yes", "LocalForward": ["1 a:1", "2 b:2"]})
    with pytest.raises(InvalidField):
        validate_extra_options({"Host": "other"})
    with pytest.raises(InvalidField):
        validate_extra_options({"Bad Key": "x"})
    with pytest.raises(InvalidField):
        validate_extra_options({"Empty": ""})
    with pytest.raises(InvalidField):
        validate_extra_options({"Nothing": []})


@pytest.mark.parametrize("key", ["HostName", "hostname", "User", "PORT", "ProxyCommand"])
def test_extra_options_refuse_named_directives(key):
    with pytest.raises(InvalidField) as excinfo:
        validate_extra_options({key: "x"})
    assert excinfo.value.field == "extra_options"


def test_extra_identity_file_requires_primary():
    with pytest.raises(InvalidField):
        validate_record(HostRecord(alias="a", address="h", extra_options={"IdentityFile": "~/.ssh/b"}))

    validate_record(
        HostRecord(alias="a", address="h", identity_file="~/.ssh/a", extra_options={"identityfile": "~/.ssh/b"})
    )


def test_validate_record_normalises_port():
    record = HostRecord(alias="a", address="h", port="2200")

    validate_record(record)

    assert record.port == 2200
