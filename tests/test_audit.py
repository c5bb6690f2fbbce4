import json

from viprpg_archive.audit import audit_works, main


def _project(tmp_path):
    (tmp_path / "public" / "icons" / "f").mkdir(parents=True)
    (tmp_path / "public" / "screenshots" / "f").mkdir(parents=True)
    (tmp_path / "public" / "icons" / "f" / "01.png").write_bytes(b"x")
    (tmp_path / "public" / "screenshots" / "f" / "01.png").write_bytes(b"x")
    works = [
        {
            "id": "f-work-10", "no": "10", "title": "Ten", "author": "A",
            "icon": "/icons/f/10.png", "ss": ["/screenshots/f/10.png"],
        },
        {
            "id": "f-work-01", "no": "1", "title": "One", "author": "B", "category": "RPG",
            "engine": "Wolf", "streaming": "OK", "forum": "https://bbs/1", "authorComment": "hi",
            "hostComment": "yo", "icon": "/icons/f/01.png", "ss": ["/screenshots/f/01.png"],
        },
    ]
    works_dir = tmp_path / "src" / "data" / "works"
    works_dir.mkdir(parents=True)
    (works_dir / "f.json").write_text(json.dumps(works), encoding="utf-8")
    return works


def test_audit_counts_missing_fields_and_files(tmp_path):
    works = _project(tmp_path)
    counts, rows = audit_works(works, str(tmp_path / "public"))
    assert counts["author"] == 0
    assert counts["category"] == 1
    assert counts["icon"] == 1
    assert counts["ss"] == 1
    assert rows == [("10", "Ten", [
        "category", "engine", "streaming", "forum", "authorComment", "hostComment", "icon", "ss",
    ])]


def test_audit_cli_output(tmp_path, capsys):
    _project(tmp_path)
    assert main(["f", "--root", str(tmp_path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "TOTAL=2"
    assert out[1].startswith("COUNTS=title:0,author:0,category:1")
    assert out[2] == "ROWS_START"
    assert out[3].startswith("10\tTen\t")
    assert out[-1] == "ROWS_END"


def test_audit_cli_rejects_bad_file(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("{}", encoding="utf-8")
    assert main([str(bad)]) == 1
