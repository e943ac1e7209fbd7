from unittest import mock

import pymysql
import pytest

from tinywebserver.cli import main


def _unreachable(*args, **kwargs):
    raise pymysql.err.OperationalError(2003, "unreachable")


def test_database_failure_exits_with_one(capsys):
    with mock.patch("pymysql.connect", side_effect=_unreachable) as connect:
        code = main(["-c", "1", "-s", "2"])
    assert code == 1
    assert connect.call_count == 1
    assert "MYSQL Error" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [["-x", "-c", "1"], ["-c1", "stray", "-p", "9100"]])
def test_odd_arguments_still_reach_database_setup(argv):
    with mock.patch("pymysql.connect", side_effect=_unreachable) as connect:
        code = main(argv)
    assert code == 1
    kwargs = connect.call_args.kwargs
    assert kwargs["host"] == "172.18.0.2"
    assert kwargs["port"] == 3306
    assert (kwargs["user"], kwargs["database"]) == ("root", "testdb")