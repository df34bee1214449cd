from aptly_ops.exceptions import AptlyApiError, AptlyCommandError


class TestAptlyApiError:
    def test_empty_body(self):
        exc = AptlyApiError(404)
        assert exc.status == 404
        assert not exc.msg
        assert not exc.errors
        assert str(exc) == "404 Not Found"

    def test_unexpected_body(self):
        for body, error in [
            (b"Some error", "400 Bad Request: Some error"),
            (b'["some error"]', '400 Bad Request: ["some error"]'),
        ]:
            exc = AptlyApiError(400, body)
            assert exc.msg == body.decode("utf-8")
            assert exc.output == exc.msg
            assert not exc.errors
            assert str(exc) == error

    def test_json_errors(self):
        error = b'{"error": "Some error", "meta": "some description"}'
        for body in [error, b"[" + error + b"]"]:
            exc = AptlyApiError(404, body)
            assert len(exc.errors) == 1
            assert str(exc) == "Some error (some description)"

        body = b'[{"error": "Some error 1", "meta": "some description 1"}, {"error": "Some error 2"}]'
        assert (
            str(AptlyApiError(400, body))
            == "Multiple errors: Some error 1 (some description 1); Some error 2"
        )


class TestAptlyCommandError:
    def test_exit_code(self):
        exc = AptlyCommandError(
            ["aptly", "mirror", "update", "sury"],
            1,
            "Downloading...\nERROR: unable to update: download errors\n",
        )
        assert exc.returncode == 1
        assert exc.args_list == ("aptly", "mirror", "update", "sury")
        assert str(exc) == (
            "'aptly mirror update sury' exited with code 1: "
            "ERROR: unable to update: download errors"
        )

    def test_no_output(self):
        assert str(AptlyCommandError(["aptly"], 2)) == "'aptly' exited with code 2"

    def test_signal(self):
        exc = AptlyCommandError(["aptly", "mirror", "update", "sury"], -9)
        assert str(exc) == "'aptly mirror update sury' was killed by signal 9"
