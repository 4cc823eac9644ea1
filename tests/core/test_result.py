from phub_shared import ErrorCode, Result


def test_ok_carries_data_and_meta():
    res = Result.Ok([1, 2], scan_id="abc")
    assert res.ok is True
    assert res.code == "OK"
    assert res.data == [1, 2]
    assert res.meta == {"scan_id": "abc"}


def test_err_accepts_enum_codes():
    res = Result.Err(ErrorCode.SCAN_IN_PROGRESS, "busy")
    assert res.ok is False
    assert res.code == "SCAN_IN_PROGRESS"
    assert res.error == "busy"
