from sshconn.models import HostRecord
from sshconn.search_utils import filter_records, record_matches


def make_record(alias, address, user=None):
    return HostRecord(alias=alias, address=address, user=user)


def test_matches_alias():
    record = make_record("server1", "192.168.0.1")
    assert record_matches(record, "server")
    assert not record_matches(record, "other")


def test_matches_address():
    record = make_record("server2", "10.0.0.5")
    assert record_matches(record, "10.0.0.5")
    assert record_matches(record, "10.0")


def test_matches_user_case_insensitively():
    record = make_record("srv", "host", user="Deploy")
    assert record_matches(record, "deploy")
    assert record_matches(record, "DEP")


def test_empty_query_matches_everything():
    assert record_matches(make_record("a", "b"), "")


def test_ignores_other_fields():
    record = HostRecord(alias="srv", address="host", proxy_command="ssh jump -W %h:%p", extra_options={"Tag": "prod"})
    assert not record_matches(record, "jump")
    assert not record_matches(record, "prod")


def test_filter_preserves_order():
    records = [make_record("b-web", "1"), make_record("a-db", "2"), make_record("c-web", "3")]
    assert [r.alias for r in filter_records(records, "web")] == ["b-web", "c-web"]
