from click.testing import CliRunner

from trellis import __version__
from trellis.cli import cli

from conftest import write_files


def test_cli_build(site_dir, tmp_path):
    write_files(site_dir, {"index.md": "# Home\n\n[About](about.md)\n", "about.md": "# About\n"})
    out = tmp_path / "out"
    runner = CliRunner()
    result = runner.invoke(cli, ["build", str(site_dir / "index.md"), "-o", str(out), "-j", "2"])
    assert result.exit_code == 0, result.output
    assert "Built 2 pages" in result.output
    assert (out / "about.html").exists()


def test_cli_build_reports_fatal_errors(tmp_path):
    write_files(tmp_path, {"site/index.md": "[Out](../outside.md)\n", "outside.md": "# Outside\n"})
    runner = CliRunner()
    result = runner.invoke(cli, ["build", str(tmp_path / "site" / "index.md"), "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "escapes the site root" in result.output


def test_cli_build_reports_page_failures(site_dir, tmp_path):
    write_files(
        site_dir,
        {
            "index.md": "# Home\n\n[Bad](bad.md)\n",
            "bad.md": "<!--\n[default]\ntitle = 3\n-->\n# Bad\n",
        },
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["build", str(site_dir / "index.md"), "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "Built 1 pages" in result.output
    assert "1 failed:" in result.output
    assert "File: bad.md" in result.output


def test_cli_build_requires_existing_entry(tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ["build", str(tmp_path / "missing.md")])
    assert result.exit_code != 0


def test_cli_tree(site_dir):
    write_files(
        site_dir,
        {
            "index.md": "# Home\n\n[About](about.md)\n\n![Logo](img/logo.png)\n",
            "about.md": "[Home](index.md)\n",
            "img/logo.png": b"x",
        },
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["tree", str(site_dir / "index.md")])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "index.md -> index.html" in lines
    assert "  about.md -> about.html" in lines
    assert "  img/logo.png -> img/logo.png" in lines


def test_cli_tree_shows_broken_references(site_dir):
    write_files(
        site_dir,
        {
            "index.md": "# Home\n\n[About](about.md)\n\n<link rel=\"stylesheet\" href=\"style.css\">\n",
            "about.md": "![x](missing.png)\n",
            "style.css": "body { background: url(bg.png); }\n",
            "bg.png": b"png",
        },
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["tree", str(site_dir / "index.md")])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "  about.md -> about.html" in lines
    assert any(line.startswith("    missing.png -> (") and "does not exist" in line for line in lines)
    assert "  style.css -> style.css" in lines
    assert "    bg.png -> bg.png" in lines


def test_cli_tree_reports_discovery_errors(tmp_path):
    write_files(tmp_path, {"site/index.md": "[Out](../outside.md)\n", "outside.md": "# Outside\n"})
    runner = CliRunner()
    result = runner.invoke(cli, ["tree", str(tmp_path / "site" / "index.md")])
    assert result.exit_code == 1
    assert "Discovery failed:" in result.output
    assert "escapes the site root" in result.output


def test_cli_version():
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
