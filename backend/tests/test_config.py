import os

from eyesentry import config
from eyesentry.db import engine


def test_env_file_does_not_override_process_environment(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DATABASE_URL=sqlite:////tmp/eyesentry-dev.db\nSEED_DEFAULTS=1\nDEV_MAIL_DIR=/tmp/outbox\n")
    config.load_env(env_file)
    assert os.environ["DATABASE_URL"] == "sqlite://"
    assert os.environ["SEED_DEFAULTS"] == "0"
    assert os.environ["DEV_MAIL_DIR"] == ""


def test_tests_use_in_memory_database():
    assert engine.url.get_backend_name() == "sqlite"
    assert engine.url.database in (None, "", ":memory:")
