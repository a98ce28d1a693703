"""
Tests for the edit orchestrator — validation, stage order, per-chroot failures.
"""

from __future__ import annotations

import os
from datetime import datetime

import pytest

from conftest import write_archive
from crouton_edit.core.errors import ValidationError
from crouton_edit.core.models.request import OperationRequest
from crouton_edit.core.services.confirm import Confirmer
from crouton_edit.core.use_cases.edit import ChrootEditor, _required, validate_request

NOW = datetime(2020, 1, 1, 12, 0)


@pytest.fixture
def editor(config, registry, tmp_path):
    slept: list[float] = []
    ed = ChrootEditor(
        config,
        registry,
        Confirmer(yes_to_all=True),
        sleep=slept.append,
        now=lambda: NOW,
        cwd=tmp_path,
    )
    ed.slept = slept
    return ed


class TestRequest:
    def test_stage_order(self):
        req = OperationRequest(names=["dev"], move="x", encrypt=True, keyfile="-", backup=True)
        assert req.edits == ["backup", "keyfile", "encrypt", "move"]


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"names": ["dev"]},
            {"names": ["dev"], "delete": True, "backup": True},
            {"names": ["dev"], "backup": True, "restore": 1},
            {"names": ["dev"], "list_all": True, "backup": True},
            {"names": [], "backup": True},
            {"names": [], "list_details": True},
            {"names": ["../x"], "backup": True},
            {"names": ["-x"], "delete": True},
            {"names": ["dev", "dev"], "backup": True},
            {"names": ["a", "b"], "move": "newname"},
            {"names": ["a", "b"], "keyfile": "one.key"},
            {"names": ["a", "b"], "backup": True, "archive": "one.tar.gz"},
            {"names": [], "restore": 1, "archive": "missing.tar.gz"},
        ],
    )
    def test_rejected(self, kwargs, tmp_path):
        with pytest.raises(ValidationError) as exc:
            validate_request(OperationRequest(**kwargs), cwd=tmp_path)
        assert exc.value.exit_code == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"names": ["a", "b"], "move": "/media/usb/"},
            {"names": ["a", "b"], "keyfile": "-"},
            {"names": ["a", "b"], "keyfile": "keys/"},
            {"names": ["a", "b"], "restore": 1, "archive": "backups/"},
            {"names": [], "list_all": True},
            {"names": ["dev"], "list_details": True},
        ],
    )
    def test_accepted(self, kwargs, tmp_path):
        validate_request(OperationRequest(**kwargs), cwd=tmp_path)

    def test_restore_without_name_needs_archive_file(self, tmp_path):
        write_archive(tmp_path / "dev.tar.gz", "dev")
        validate_request(OperationRequest(restore=1, archive="dev.tar.gz"), cwd=tmp_path)
        with pytest.raises(ValidationError):
            validate_request(OperationRequest(restore=1, archive=str(tmp_path)), cwd=tmp_path)

    def test_stage_without_a_name_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _required(None)
        assert exc.value.exit_code == 2

    def test_nothing_changed_on_invalid_request(self, editor, make_chroot, mock_adapter):
        chroot = make_chroot()
        with pytest.raises(ValidationError):
            editor.run(OperationRequest(names=["dev"], delete=True, encrypt=True))
        assert chroot.is_dir()
        assert mock_adapter.calls == []

    def test_existing_move_target_rejected_up_front(self, editor, make_chroot, mock_adapter, tmp_path):
        make_chroot("dev")
        make_chroot("dev2")
        with pytest.raises(ValidationError, match="already exists"):
            editor.run(OperationRequest(names=["dev"], backup=True, move="dev2"))
        assert list(tmp_path.glob("dev-*.tar.gz")) == []
        assert mock_adapter.calls == []


class TestStages:
    def test_backup_then_move(self, editor, make_chroot, chroots_root, tmp_path, mock_adapter):
        make_chroot()
        report = editor.run(
            OperationRequest(names=["dev"], backup=True, archive="backups/", move="dev2")
        )

        assert report.ok
        outcome = report.outcomes[0]
        assert outcome.completed == ["backup", "move"]
        assert (tmp_path / "backups" / "dev-20200101-1200.tar.gz").is_file()
        assert (chroots_root / "dev2").is_dir()
        assert not (chroots_root / "dev").exists()
        assert mock_adapter.calls == ["unmount:dev", "unmount:dev"]

    def test_delete(self, editor, make_chroot, chroots_root):
        make_chroot()
        report = editor.run(OperationRequest(names=["dev"], delete=True))
        assert report.outcomes[0].completed == ["delete"]
        assert not (chroots_root / "dev").exists()

    def test_archive_dir_from_config(self, config, registry, make_chroot, tmp_path):
        make_chroot()
        config.archive_dir = tmp_path / "store"
        ed = ChrootEditor(config, registry, now=lambda: NOW, cwd=tmp_path)
        report = ed.run(OperationRequest(names=["dev"], backup=True))
        assert report.ok
        assert (tmp_path / "store").is_dir()
        assert (tmp_path / "store" / "dev-20200101-1200.tar.gz").is_file()

    def test_restore_infers_name_and_continues(self, editor, chroots_root, tmp_path, mock_adapter):
        write_archive(tmp_path / "x.tar.gz", "dev", label="crouton:backup.202001011200-dev")

        report = editor.run(OperationRequest(restore=1, archive="x.tar.gz", move="renamed"))

        outcome = report.outcomes[0]
        assert outcome.name == "dev"
        assert outcome.completed == ["restore", "move"]
        assert (chroots_root / "renamed" / "etc" / "hostname").is_file()

    def test_restore_over_existing(self, editor, make_chroot, chroots_root, tmp_path):
        make_chroot()
        write_archive(tmp_path / "dev.tar.gz", "dev", {"fresh": b"1"})

        single = editor.run(OperationRequest(names=["dev"], restore=1))
        assert single.exit_code == 1
        assert (chroots_root / "dev" / "etc").is_dir()

        double = editor.run(OperationRequest(names=["dev"], restore=2))
        assert double.ok
        assert editor.slept == [0]
        assert [p.name for p in (chroots_root / "dev").iterdir()] == ["fresh"]

    def test_first_time_encryption_with_external_key(self, editor, make_chroot, mock_adapter, tmp_path):
        make_chroot()
        report = editor.run(OperationRequest(names=["dev"], keyfile="keys/", encrypt=True))

        outcome = report.outcomes[0]
        assert outcome.completed == ["keyfile", "encrypt"]
        assert outcome.details["keyfile"]["status"] == "deferred"
        assert mock_adapter.calls == ["unmount:dev", "mount:dev", "unmount:dev"]
        mount = mock_adapter.call_log[1].action
        assert mount.encrypt
        assert mount.keyfile == os.path.realpath(tmp_path / "keys" / "dev")

    def test_encrypt_with_inline_key(self, editor, make_chroot, mock_adapter):
        make_chroot()
        editor.run(OperationRequest(names=["dev"], keyfile="-", encrypt=True))
        assert mock_adapter.call_log[1].action.keyfile is None

    def test_key_moved_out_of_encrypted_chroot(self, editor, make_chroot, tmp_path, mock_adapter):
        chroot = make_chroot(encrypted=True)
        report = editor.run(OperationRequest(names=["dev"], keyfile=f"{tmp_path}/keys/"))
        assert report.outcomes[0].details["keyfile"]["status"] == "moved"
        assert (tmp_path / "keys" / "dev").is_file()
        assert (chroot / ".ecryptfs").read_text().strip() == os.path.realpath(tmp_path / "keys" / "dev")
        assert mock_adapter.calls == []

    def test_failure_stops_later_stages(self, editor, make_chroot, chroots_root, mock_adapter):
        make_chroot()
        mock_adapter.set_failure("mount:dev", return_code=6)

        report = editor.run(OperationRequest(names=["dev"], encrypt=True, move="dev2"))

        outcome = report.outcomes[0]
        assert outcome.completed == []
        assert outcome.exit_code == 6
        assert report.exit_code == 6
        assert (chroots_root / "dev").is_dir()
        assert not (chroots_root / "dev2").exists()


class TestMultipleChroots:
    def test_failure_does_not_stop_next_chroot(self, editor, make_chroot, tmp_path):
        make_chroot("b")
        report = editor.run(OperationRequest(names=["a", "b"], backup=True))

        first, second = report.outcomes
        assert first.exit_code == 1
        assert "not found" in first.error
        assert second.ok
        assert second.completed == ["backup"]
        assert not report.ok
        assert report.exit_code == 1

    def test_io_error_stops_only_that_chroot(self, editor, make_chroot, tmp_path):
        make_chroot("dev", encrypted=True)
        make_chroot("dev2", encrypted=True)
        (tmp_path / "blocker").write_text("a regular file")

        report = editor.run(OperationRequest(names=["dev", "dev2"], keyfile="blocker/keys/"))

        assert [o.name for o in report.outcomes] == ["dev", "dev2"]
        for outcome in report.outcomes:
            assert outcome.exit_code == 1
            assert "Unable to write keyfile" in outcome.error
            assert outcome.completed == []
        assert report.exit_code == 1

    def test_reports_first_failure_code(self, editor, make_chroot, mock_adapter):
        make_chroot("a")
        make_chroot("b")
        mock_adapter.set_failure("unmount:a", return_code=5)
        mock_adapter.set_failure("unmount:b", return_code=7)

        report = editor.run(OperationRequest(names=["a", "b"], encrypt=True))

        assert [o.exit_code for o in report.outcomes] == [5, 7]
        assert report.exit_code == 5

    def test_declined_delete_continues(self, config, registry, make_chroot, chroots_root):
        make_chroot("a")
        make_chroot("b")
        answers = iter(["n", "y"])
        ed = ChrootEditor(config, registry, Confirmer(prompt=lambda q: next(answers)))

        report = ed.run(OperationRequest(names=["a", "b"], delete=True))

        assert report.outcomes[0].aborted
        assert report.outcomes[1].completed == ["delete"]
        assert (chroots_root / "a").is_dir()
        assert not (chroots_root / "b").exists()
        assert report.exit_code == 1

    def test_yes_to_all_answer_covers_remaining(self, config, registry, make_chroot, chroots_root):
        make_chroot("a")
        make_chroot("b")
        answers = iter(["all"])
        ed = ChrootEditor(config, registry, Confirmer(prompt=lambda q: next(answers)))

        assert ed.run(OperationRequest(names=["a", "b"], delete=True)).ok
        assert list(chroots_root.iterdir()) == []

    def test_move_into_directory(self, editor, make_chroot, tmp_path):
        make_chroot("a")
        make_chroot("b")
        report = editor.run(OperationRequest(names=["a", "b"], move=f"{tmp_path}/usb/"))
        assert report.ok
        assert (tmp_path / "usb" / "a").is_dir()
        assert (tmp_path / "usb" / "b").is_dir()

    def test_report_to_dict(self, editor, make_chroot):
        make_chroot("b")
        data = editor.run(OperationRequest(names=["a", "b"], delete=True)).to_dict()
        assert data["ok"] is False
        assert data["exit_code"] == 1
        assert data["chroots"][0]["name"] == "a"
        assert "error" in data["chroots"][0]
        assert data["chroots"][1] == {"name": "b", "completed": ["delete"]}
