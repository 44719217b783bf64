from vessel_tracks.migrate import migrate


def test_creates_live_and_reports_archives(tmp_path, make_archive, capsys):
    make_archive("good.db", [(1000, 60.0, 22.0)])
    make_archive("bad.db", columns="timestamp INTEGER, lat TEXT, lon REAL, cell_id INTEGER")

    report = migrate(tmp_path)

    assert (tmp_path / "tracks.db").exists()
    assert report["good.db"] is None
    assert report["bad.db"].startswith("schema mismatch")
    assert "1 of 2 archive(s) usable" in capsys.readouterr().out


def test_idempotent(tmp_path):
    migrate(tmp_path)
    assert migrate(tmp_path) == {}
