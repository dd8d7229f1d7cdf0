# tests/test_cli.py

import json

import pytest

from simscan.cli import main_cli
from simscan.config import SystemConfig


@pytest.fixture
def config_path(tmp_path):
    """Config that keeps log files inside the test directory"""
    path = tmp_path / "config.yaml"
    SystemConfig(log_dir=str(tmp_path / "logs"), n_workers=2).save(str(path))
    return str(path)


def test_scan_writes_json(duplicate_images, config_path, tmp_path):
    output = tmp_path / "groups.json"
    code = main_cli(['scan', str(duplicate_images['root']), '-c', config_path,
                     '-q', '-d', '5', '-o', str(output)])

    assert code == 0
    data = json.loads(output.read_text())
    assert data['totalFiles'] == 3
    paths = sorted(f['path'] for f in data['groups'][0])
    assert paths == sorted([duplicate_images['original'], duplicate_images['duplicate']])


def test_scan_prints_groups(duplicate_images, config_path, capsys):
    code = main_cli(['scan', str(duplicate_images['root']), '-c', config_path,
                     '-q', '-t', 'dhash', '-s', '8'])

    assert code == 0
    out = capsys.readouterr().out
    assert "Found 1 similar groups with 2 files" in out
    assert duplicate_images['duplicate'] in out


def test_scan_invalid_directory(tmp_path, config_path):
    assert main_cli(['scan', str(tmp_path / "missing"), '-c', config_path, '-q']) == 2


def test_scan_invalid_distance(tmp_path, config_path):
    assert main_cli(['scan', str(tmp_path), '-c', config_path, '-q', '-d', '-1']) == 2


def test_init_config(tmp_path):
    path = tmp_path / "out.yaml"
    assert main_cli(['init-config', str(path)]) == 0
    assert SystemConfig.load(str(path)).scan.hash_type == "phash"
