#!/usr/bin/env python3
"""
Tests for the command-line front end: parsing, selection and end-to-end runs
"""

import argparse
import json
import os

import pytest

from conftest import write_file
from diskreclaim.cli.main import (
    build_parser,
    build_selection,
    choose_keeper,
    config_from_args,
    export_csv,
    format_size,
    main,
    parse_category,
    parse_size,
    select_duplicates,
)
from diskreclaim.core.categorizer import Category
from diskreclaim.core.models import DuplicateGroup, FileRecord, ScanResult


@pytest.mark.parametrize("text, expected", [
    ("0", 0),
    ("512", 512),
    ("10B", 10),
    ("1KB", 1024),
    ("1.5 MB", int(1.5 * 1024 ** 2)),
    ("2gb", 2 * 1024 ** 3),
    ("1TB", 1024 ** 4),
])
def test_parse_size(text, expected):
    assert parse_size(text) == expected


def test_parse_size_rejects_garbage():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_size("lots")


def test_format_size():
    assert format_size(0) == "0.0 B"
    assert format_size(1536) == "1.5 KB"
    assert format_size(5 * 1024 ** 3) == "5.0 GB"


def test_parse_category():
    assert parse_category("LOG") is Category.LOG
    assert parse_category("duplicate-candidate") is Category.DUPLICATE_CANDIDATE
    with pytest.raises(argparse.ArgumentTypeError):
        parse_category("junk")


def sample_result():
    records = (
        FileRecord("/data/a/photo.jpg", 100, 300.0, Category.MEDIA),
        FileRecord("/data/photo.jpg", 100, 100.0, Category.MEDIA),
        FileRecord("/data/b/c/photo (1).jpg", 100, 200.0, Category.DUPLICATE_CANDIDATE),
        FileRecord("/data/app.log", 50, 50.0, Category.LOG),
        FileRecord("/data/tmp/x.bin", 10, 10.0, Category.TEMPORARY),
    )
    group = DuplicateGroup(
        size=100,
        content_hash="abc",
        paths=("/data/a/photo.jpg", "/data/b/c/photo (1).jpg", "/data/photo.jpg"),
    )
    return ScanResult(root="/data", records=records, duplicate_groups=(group,))


@pytest.mark.parametrize("strategy, keeper", [
    ("keep_first", "/data/a/photo.jpg"),
    ("keep_newest", "/data/a/photo.jpg"),
    ("keep_oldest", "/data/photo.jpg"),
    ("keep_shortest_path", "/data/photo.jpg"),
])
def test_choose_keeper(strategy, keeper):
    result = sample_result()
    mtimes = {r.path: r.mtime for r in result.records}
    assert choose_keeper(result.duplicate_groups[0], strategy, mtimes) == keeper


def test_choose_keeper_unknown_strategy():
    with pytest.raises(ValueError):
        choose_keeper(sample_result().duplicate_groups[0], "keep_random")


def test_select_duplicates_leaves_one_copy():
    selected = select_duplicates(sample_result(), "keep_oldest")
    assert selected == ["/data/a/photo.jpg", "/data/b/c/photo (1).jpg"]


def test_build_selection_merges_without_repeats():
    selected = build_selection(
        sample_result(),
        [Category.LOG, Category.TEMPORARY, Category.DUPLICATE_CANDIDATE],
        "keep_oldest",
    )
    assert selected == [
        "/data/b/c/photo (1).jpg",
        "/data/app.log",
        "/data/tmp/x.bin",
        "/data/a/photo.jpg",
    ]


def test_build_selection_never_takes_every_copy():
    selected = build_selection(sample_result(), [Category.MEDIA, Category.DUPLICATE_CANDIDATE], "keep_first")
    assert "/data/a/photo.jpg" not in selected
    assert set(selected) == {"/data/photo.jpg", "/data/b/c/photo (1).jpg"}


def test_config_from_args():
    args = build_parser().parse_args([
        "--exclude-dir", "node_modules", "/mnt/archive",
        "--exclude-ext", "ISO",
        "--max-size", "10MB",
        "--workers", "2",
        "--algorithm", "md5",
        "--no-safe-mode",
        "--no-follow-symlinks",
    ])
    config = config_from_args(args)

    assert {"node_modules", "/mnt/archive", ".git"} <= config.exclude_dirs
    assert config.excluded_extensions == {".iso"}
    assert config.max_file_size == 10 * 1024 ** 2
    assert config.workers == 2
    assert config.hash_algorithm == "md5"
    assert not config.safe_mode
    assert not config.follow_symlinks


def test_export_csv(tmp_path):
    out = tmp_path / "dupes.csv"
    export_csv(sample_result(), str(out))
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "group,size,hash,count,wasted,path"
    assert len(lines) == 4


def test_main_reports_and_exports(dup_tree, tmp_path):
    out = tmp_path / "report.json"

    code = main(["--path", str(dup_tree), "--quiet", "--export", "json", "--export-path", str(out)])

    assert code == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["status"] == "complete"
    assert data["summary"]["total_files"] == 4
    assert len(data["duplicates"]) == 1
    assert data["duplicates"][0]["wasted"] == 1000


def test_main_deletes_duplicates(dup_tree):
    code = main(["--path", str(dup_tree), "--quiet", "--delete-duplicates", "keep_first", "--yes"])

    assert code == 0
    assert (dup_tree / "a.bin").exists()
    assert not (dup_tree / "sub" / "b.bin").exists()
    assert (dup_tree / "c.bin").exists()
    assert (dup_tree / "d.bin").exists()


def test_main_cleans_categories(tree):
    write_file(tree, "build.log", "log line")
    write_file(tree, "tmp/scratch.dat", "scratch")
    keep = write_file(tree, "notes.txt", "keep")

    code = main(["--path", str(tree), "--quiet", "--clean-category", "log", "temporary", "--yes"])

    assert code == 0
    assert not (tree / "build.log").exists()
    assert not (tree / "tmp" / "scratch.dat").exists()
    assert keep.exists()


def test_main_dry_run_keeps_files(dup_tree):
    code = main(["--path", str(dup_tree), "--quiet", "--delete-duplicates", "keep_first", "--dry-run"])
    assert code == 0
    assert (dup_tree / "sub" / "b.bin").exists()


def test_main_rejects_missing_path(tmp_path):
    assert main(["--path", str(tmp_path / "nope"), "--quiet"]) == 2


def test_main_rejects_bad_config(tree):
    assert main(["--path", str(tree), "--quiet", "--workers", "0"]) == 2


def test_main_backup_failure_exit_code(tmp_path, tree):
    write_file(tree, "old.tmp", "x")
    blocker = write_file(tmp_path, "blocker", "file")

    code = main([
        "--path", str(tree), "--quiet", "--clean-category", "temporary", "--yes",
        "--backup", "--backup-dir", os.path.join(str(blocker), "backups"),
    ])

    assert code == 1
    assert (tree / "old.tmp").exists()
