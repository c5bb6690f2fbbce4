import json

from viprpg_archive.schema import main, validate_data_dir, validate_festival, validate_work

WORK = {
    "id": "2099-test-work-05",
    "festivalId": "2099-test",
    "no": "5",
    "title": "Foo",
    "author": "Bar",
    "streamingPolicy": "allow",
    "download": {"url": "https://example.com/05.zip", "label": "DL"},
    "forum": "https://jbbs.example/read/5",
    "ss": ["/screenshots/2099-test/05.png"],
}

FESTIVAL = {
    "id": "2099-test",
    "year": 2099,
    "name": "Test Festival",
    "slug": "2099-test",
    "type": "gw",
    "banners": ["/banners/2099-test.png"],
    "worksFile": "works/2099-test.json",
    "columns": ["icon", "work", "type", "streaming", "download", "forum"],
}


def test_valid_work_passes():
    assert validate_work(WORK) is None


def test_missing_author_fails():
    work = dict(WORK)
    del work["author"]
    err = validate_work(work)
    assert err and "author" in err


def test_empty_screenshot_list_fails():
    assert validate_work(dict(WORK, ss=[])) is not None


def test_unknown_keys_and_nulls_fail():
    assert validate_work(dict(WORK, rating=5)) is not None
    assert validate_work(dict(WORK, engine=None)) == "/engine must not be null"
    assert validate_work(dict(WORK, streamingPolicy="maybe")) is not None
    assert validate_work(dict(WORK, forum="not a url")) is not None


def test_festival_columns_enum():
    assert validate_festival(FESTIVAL) is None
    assert validate_festival(dict(FESTIVAL, columns=["rating"])) is not None
    assert validate_festival(dict(FESTIVAL, year="2099")) is not None


def _data_dir(tmp_path, works):
    (tmp_path / "works").mkdir()
    (tmp_path / "festivals.json").write_text(json.dumps([FESTIVAL]), encoding="utf-8")
    (tmp_path / "works" / "2099-test.json").write_text(json.dumps(works, ensure_ascii=False), encoding="utf-8")
    return tmp_path


def test_data_dir_checks_festival_id(tmp_path):
    other = dict(WORK, id="x-work-01", festivalId="other")
    errors = validate_data_dir(str(_data_dir(tmp_path, [WORK, other])))
    assert errors == [{
        "file": "works/2099-test.json",
        "message": "Work x-work-01 festivalId mismatch",
        "details": "Expected 2099-test",
    }]


def test_cli_exit_codes(tmp_path, capsys):
    good = tmp_path / "good"
    good.mkdir()
    _data_dir(good, [WORK])
    assert main(["--data-dir", str(good)]) == 0
    assert "Data validation passed" in capsys.readouterr().out

    bad_dir = tmp_path / "bad"
    bad_dir.mkdir()
    _data_dir(bad_dir, [dict(WORK, ss=[])])
    assert main(["--data-dir", str(bad_dir)]) == 1
    assert "Data validation failed" in capsys.readouterr().err
