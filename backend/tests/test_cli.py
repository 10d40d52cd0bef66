# Overview: Pytest coverage for the flask CLI command groups.

import os
import stat

from packtrack.extensions import db
from packtrack.models import Product, Workspace
from packtrack.services import evidence_service


class TestSystemCommands:

    def test_create_workspace(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "create-workspace", "--name", "Annex", "--code", "ANX"])

        assert "PASS Created workspace: Annex" in result.output
        assert db.session.query(Workspace).filter_by(code="ANX").count() == 1

    def test_duplicate_code(self, app, db_session, workspace_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "create-workspace", "--name", "Again", "--code", workspace_a.code])
        assert "FAIL" in result.output


class TestLedgerCheck:

    def test_clean_ledger(self, app, db_session, workspace_a, make_product):
        make_product(5)
        runner = app.test_cli_runner()
        result = runner.invoke(args=["ledger", "check", "--workspace-id", str(workspace_a.id)])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_drift_exits_nonzero(self, app, db_session, workspace_a, make_product):
        product = make_product(5)
        db.session.query(Product).filter_by(id=product.id).update(
            {Product.quantity: 9}, synchronize_session=False
        )
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["ledger", "check", "--workspace-id", str(workspace_a.id)])
        assert result.exit_code == 1
        assert product.sku in result.output


class TestEvidenceVerify:

    def test_verify_valid_then_tampered(self, app, db_session, ctx, workspace_a, video_root, make_product, make_order):
        order = make_order((make_product(5), 1))
        video = evidence_service.save_evidence(ctx, order.id, b"footage" * 64)
        runner = app.test_cli_runner()
        args = ["evidence", "verify", str(video.id), "--workspace-id", str(workspace_a.id)]

        ok = runner.invoke(args=args)
        assert ok.exit_code == 0
        assert "PASS" in ok.output

        os.chmod(video.file_path, stat.S_IRUSR | stat.S_IWUSR)
        with open(video.file_path, "ab") as fh:
            fh.write(b"!")

        bad = runner.invoke(args=args)
        assert bad.exit_code == 1
        assert "Hash mismatch" in bad.output

    def test_unknown_workspace(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["evidence", "verify", "1", "--workspace-id", "999"])
        assert result.exit_code != 0
        assert "not found" in result.output
