import logging
import os

import pytest

from fmutex.cli import EXIT_FAILURE, EXIT_OK, EXIT_UNLOCKED, main
from fmutex.lock import FileMutex


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("FMUTEX_ROOT", "FMUTEX_ID", "FMUTEX_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    yield
    logging.getLogger("fmutex").setLevel(logging.NOTSET)


def _lock_file(root, lock_id):
    return os.path.join(str(root), lock_id, f"{lock_id}-mutex.lck")


def test_lock_test_release(tmp_path, capsys):
    base = ["--root", str(tmp_path), "--id", "test-test"]

    assert main(base + ["lock"]) == EXIT_OK
    assert "LOCKED" in capsys.readouterr().out
    assert os.path.exists(_lock_file(tmp_path, "test-test"))

    assert main(base + ["test"]) == EXIT_OK
    assert "is locked since" in capsys.readouterr().err

    assert main(base + ["release"]) == EXIT_OK
    assert "RELEASED" in capsys.readouterr().out
    assert not os.path.exists(_lock_file(tmp_path, "test-test"))

    assert main(base + ["test"]) == EXIT_UNLOCKED
    assert "is unlocked" in capsys.readouterr().err


def test_unlock_alias(tmp_path):
    base = ["--root", str(tmp_path), "--id", "test-unlock"]
    assert main(base + ["lock"]) == EXIT_OK
    assert main(base + ["unlock"]) == EXIT_OK
    assert not os.path.exists(_lock_file(tmp_path, "test-unlock"))


def test_release_of_unlocked_mutex_fails(tmp_path, capsys):
    assert main(["--root", str(tmp_path), "--id", "nothing", "release"]) == EXIT_FAILURE
    assert "release failed" in capsys.readouterr().err


def test_lock_timeout(tmp_path, capsys):
    holder = FileMutex(str(tmp_path), "busy")
    holder.lock()
    try:
        code = main(["--root", str(tmp_path), "--id", "busy", "lock", "--pulse", "20ms", "--timeout", "200ms"])
        assert code == EXIT_FAILURE
        assert "expired" in capsys.readouterr().err
    finally:
        holder.unlock()


def test_lock_reclaims_dead_mutex(tmp_path):
    mx = FileMutex(str(tmp_path), "dead")
    with open(mx.lock_path, "w", encoding="utf-8") as f:
        f.write("1000\n")
    code = main(["--root", str(tmp_path), "--id", "dead", "lock",
                 "--pulse", "20ms", "--limit", "1s", "--timeout", "3s"])
    assert code == EXIT_OK
    assert mx.status().locked
    mx.unlock()


def test_silent_mode(tmp_path, capsys):
    base = ["--root", str(tmp_path), "--id", "quiet", "-s"]
    assert main(base + ["lock"]) == EXIT_OK
    assert main(base + ["test"]) == EXIT_OK
    assert main(base + ["release"]) == EXIT_OK
    assert main(base + ["release"]) == EXIT_FAILURE
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == ""


def test_missing_id_is_usage_error(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main(["--root", str(tmp_path), "test"])
    assert exc_info.value.code == 2


def test_missing_command_is_usage_error(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main(["--root", str(tmp_path), "--id", "x"])
    assert exc_info.value.code == 2


def test_invalid_duration_is_usage_error(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main(["--root", str(tmp_path), "--id", "x", "lock", "--timeout", "soon"])
    assert exc_info.value.code == 2


def test_root_and_id_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("FMUTEX_ROOT", str(tmp_path / "shared"))
    monkeypatch.setenv("FMUTEX_ID", "env-mutex")
    assert main(["lock"]) == EXIT_OK
    assert os.path.exists(_lock_file(tmp_path / "shared", "env-mutex"))
    assert main(["release"]) == EXIT_OK


def test_settings_from_config_file(tmp_path):
    (tmp_path / ".fmutex.yml").write_text(
        f"root: {tmp_path / 'from-file'}\nid: file-mutex\n", encoding="utf-8")
    assert main(["lock"]) == EXIT_OK
    assert os.path.exists(_lock_file(tmp_path / "from-file", "file-mutex"))
    assert main(["--id", "file-mutex", "release"]) == EXIT_OK


def test_test_command_with_out_of_range_timestamp(tmp_path, capsys):
    mx = FileMutex(str(tmp_path), "overflow")
    with open(mx.lock_path, "w", encoding="utf-8") as f:
        f.write("999999999999999999\n")
    assert main(["--root", str(tmp_path), "--id", "overflow", "test"]) == EXIT_UNLOCKED
    assert "is unlocked" in capsys.readouterr().err
