"""
Unit Tests for the management CLI argument parser
"""
import pytest

from campus_portal.cli import create_parser


class TestCreateParser:
    """Subcommands and their defaults"""

    def test_serve_defaults(self):
        args = create_parser().parse_args(["serve"])

        assert args.command == "serve"
        assert args.port == 8000
        assert args.reload is False

    def test_create_user_defaults_to_admin(self):
        args = create_parser().parse_args(["create-user", "warden@campus.edu", "s3cret-pass"])

        assert args.email == "warden@campus.edu"
        assert args.password == "s3cret-pass"
        assert args.role == "admin"
        assert args.full_name is None

    def test_create_user_with_role(self):
        args = create_parser().parse_args([
            "create-user", "prof@campus.edu", "pw12345678",
            "--role", "faculty", "--name", "Dr. Iyer", "--department", "Physics",
        ])

        assert args.role == "faculty"
        assert args.full_name == "Dr. Iyer"
        assert args.department == "Physics"

    def test_unknown_role_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["create-user", "x@campus.edu", "pw", "--role", "dean"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])
