from datetime import timedelta
from aptly_ops.util import format_table, print_table, str_list, timedelta_pretty, urljoin


def test_str_list():
    assert str_list("sury,nginx") == ["sury", "nginx"]
    assert str_list(" sury , ,nginx,") == ["sury", "nginx"]
    assert str_list(",") == []


def test_urljoin():
    for inp, expected in [
        (
            ["http://localhost:8090/api/publish/", "/debian"],
            "http://localhost:8090/api/publish/debian",
        ),
        (
            ["http://localhost:8090/api/publish/", "/debian/"],
            "http://localhost:8090/api/publish/debian/",
        ),
        (
            ["http://localhost:8090/", "api/publish", ":.", "bullseye"],
            "http://localhost:8090/api/publish/:./bullseye",
        ),
        (["/api", "snapshots"], "/api/snapshots"),
    ]:
        assert urljoin(*inp) == expected


def test_timedelta_pretty():
    for inp, expected in [
        (timedelta(microseconds=0), "0μs"),
        (timedelta(microseconds=100), "100μs"),
        (timedelta(microseconds=-1000), "-1ms"),
        (timedelta(seconds=65), "1m5s"),
        (timedelta(minutes=65, seconds=10, milliseconds=25), "1h5m10s25ms"),
        (timedelta(weeks=2, hours=5), "14d5h"),
    ]:
        assert timedelta_pretty(inp) == expected


def test_format_table():
    table = format_table([["sury", 2, ["a", "b"]], ["nginx-extras", 0, []]], ["repo", "n", "list"])
    assert table == [
        ["repo        ", "n", "list"],
        ["------------", "-", "----"],
        ["sury        ", "2", "a, b"],
        ["nginx-extras", "0", "    "],
    ]


def test_print_table(capsys):
    print_table([["sury", "updated"], ["nginx", "no updates"]], ["repository", "status"])
    assert capsys.readouterr().out == (
        "repository status\n"
        "---------- ----------\n"
        "sury       updated\n"
        "nginx      no updates\n"
    )
    print_table([], ["repository", "status"])
    assert capsys.readouterr().out == ""
