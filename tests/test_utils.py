import datetime as dt

from roster.models import Pagination, StudentFilter
from roster.utils import LIST_KEY_PREFIX, query_key, record_key


def test_query_key_ignores_field_order():
    a = query_key({"name": "ada", "course": "Arts", "semester": 2}, {"page": 2, "limit": 25, "sortBy": "name", "sortOrder": "asc"})
    b = query_key({"semester": 2, "course": "Arts", "name": "ada"}, {"sortOrder": "asc", "sortBy": "name", "limit": 25, "page": 2})
    assert a == b
    assert a.startswith(LIST_KEY_PREFIX)


def test_query_key_models_and_mappings_agree():
    f = StudentFilter(course="Arts", min_enrollment_date=dt.date(2024, 1, 1))
    p = Pagination(page=3)
    assert query_key(f, p) == query_key({"minEnrollmentDate": "2024-01-01", "course": "Arts"}, {"page": 3})


def test_query_key_blank_values_do_not_matter():
    assert query_key({"name": "  ", "course": "Arts"}) == query_key({"course": "Arts"})


def test_query_key_distinguishes_pages_and_filters():
    assert query_key(None, {"page": 1}) != query_key(None, {"page": 2})
    assert query_key({"course": "Arts"}) != query_key({"course": "Science"})
    assert query_key(None, {}) != query_key()


def test_query_key_empty_filter_is_no_filter():
    assert query_key({}) == query_key() == query_key({"name": "  "}) == query_key(StudentFilter())
    assert query_key({}, {"page": 2}) == query_key(None, {"page": 2})


def test_record_key():
    assert record_key("abc") == "record_abc"
