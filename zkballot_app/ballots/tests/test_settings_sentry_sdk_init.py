import os
import subprocess
import sys
import textwrap
import unittest
from pathlib import Path

_APP_DIR = Path(__file__).resolve().parents[2]


class TestSettingsSentrySdkInit(unittest.TestCase):
    def _import_settings(self, *, extra_env: dict[str, str]) -> subprocess.CompletedProcess[str]:
        env = os.environ.copy()
        env.pop("SENTRY_DSN", None)
        env.pop("DATABASE_HOST", None)
        env.update({"SECRET_KEY": "test-secret-key-not-insecure-37-chars", **extra_env})

        code = textwrap.dedent(
            """
            from unittest.mock import patch

            with patch("sentry_sdk.init") as init:
                import config.settings as settings

            print(f"calls={init.call_count}")
            if init.call_count:
                kwargs = init.call_args.kwargs
                print(f"dsn={kwargs['dsn']}")
                print(f"environment={kwargs['environment']}")
                print(f"send_default_pii={kwargs['send_default_pii']!r}")
            print(f"engine={settings.DATABASES['default']['ENGINE']}")
            """
        ).strip()

        return subprocess.run(
            [sys.executable, "-c", code],
            env=env,
            cwd=_APP_DIR,
            capture_output=True,
            text=True,
            check=False,
        )

    def test_sentry_sdk_is_initialized_when_dsn_is_set(self) -> None:
        result = self._import_settings(
            extra_env={
                "SENTRY_DSN": "http://public@example.invalid/1",
                "SENTRY_ENVIRONMENT": "staging",
                "DATABASE_HOST": "db.example.internal",
            }
        )

        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertIn("calls=1", result.stdout)
        self.assertIn("dsn=http://public@example.invalid/1", result.stdout)
        self.assertIn("environment=staging", result.stdout)
        self.assertIn("send_default_pii=False", result.stdout)
        self.assertIn("engine=django.db.backends.postgresql", result.stdout)

    def test_sentry_sdk_is_not_initialized_without_dsn(self) -> None:
        result = self._import_settings(extra_env={})

        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertIn("calls=0", result.stdout)
        self.assertIn("engine=django.db.backends.sqlite3", result.stdout)
