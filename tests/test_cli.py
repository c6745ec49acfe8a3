from isbn_scan.scripts import scan_cli


def test_cli_recognizes_image_file(tmp_path, capsys):
    image = tmp_path / "cover.jpg"
    image.write_bytes(b"\xff\xd8\xff\xe0 cover")

    assert scan_cli.main(["--image", str(image)]) == 0
    assert capsys.readouterr().out.strip().endswith("9780134685991")


def test_cli_missing_image(tmp_path, capsys):
    assert scan_cli.main(["--image", str(tmp_path / "missing.jpg")]) == 2
    assert "not found" in capsys.readouterr().out


def test_cli_lists_cameras(capsys):
    assert scan_cli.main(["--list"]) == 0
    out = capsys.readouterr().out
    assert "* mock:back" in out
