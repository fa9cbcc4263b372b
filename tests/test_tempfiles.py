import os

import pytest

from sbwtkit.tempfiles import TempFileManager, get_temp_file_manager


@pytest.fixture
def manager(tmp_path):
    m = TempFileManager()
    m.set_dir(str(tmp_path))
    yield m
    m.delete_all_files()


def test_create_without_dir_raises():
    with pytest.raises(RuntimeError):
        TempFileManager().create_filename()


def test_set_dir_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        TempFileManager().set_dir(str(tmp_path / "missing"))


def test_set_dir_on_file_raises(tmp_path):
    path = tmp_path / "plain"
    path.write_text("x")
    with pytest.raises(NotADirectoryError):
        TempFileManager().set_dir(str(path))


def test_set_dir_recorded(manager, tmp_path):
    assert manager.temp_dir == str(tmp_path)


def test_filename_shape(manager, tmp_path):
    name = manager.create_filename("pre_", ".fna")
    base = os.path.basename(name)
    assert os.path.dirname(name) == str(tmp_path)
    assert base.startswith("pre_")
    assert base.endswith(".fna")
    assert len(base) == len("pre_") + 10 + len(".fna")
    assert base[4:-4].isalnum()
    assert not os.path.exists(name)


def test_filenames_are_unique(manager):
    names = {manager.create_filename() for _ in range(200)}
    assert len(names) == 200


def test_delete_file(manager):
    name = manager.create_filename("", ".txt")
    with open(name, "w") as f:
        f.write("data")
    manager.delete_file(name)
    assert not os.path.exists(name)
    with pytest.raises(ValueError):
        manager.delete_file(name)


def test_delete_unknown_file_raises(manager, tmp_path):
    with pytest.raises(ValueError):
        manager.delete_file(str(tmp_path / "foreign"))


def test_delete_all_files(manager):
    names = [manager.create_filename() for _ in range(3)]
    for name in names:
        with open(name, "w") as f:
            f.write("x")
    manager.delete_all_files()
    assert [os.path.exists(n) for n in names] == [False, False, False]
    with pytest.raises(ValueError):
        manager.delete_file(names[0])


def test_context_manager_cleans_up(tmp_path):
    with TempFileManager() as m:
        m.set_dir(str(tmp_path))
        name = m.create_filename()
        with open(name, "w") as f:
            f.write("x")
        assert os.path.exists(name)
    assert not os.path.exists(name)
    with pytest.raises(ValueError):
        m.delete_file(name)


def test_global_manager_is_shared(tmp_path):
    get_temp_file_manager().set_dir(str(tmp_path))
    assert get_temp_file_manager().temp_dir == str(tmp_path)