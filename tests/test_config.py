import unittest

from apps.api.config import ConfigError, Settings, load_settings

FULL_ENV = {
    "DATABASE_URL": "postgresql+psycopg://u:p@db:5432/jobs",
    "GEMINI_API_KEY": "k",
    "ASSETS_BUCKET": "assets",
    "WORKER_SECRET": "s3cret",
}


class ConfigTests(unittest.TestCase):
    def test_missing_required_values_are_all_reported(self):
        with self.assertRaises(ConfigError) as ctx:
            load_settings({})
        message = str(ctx.exception)
        for name in ("DATABASE_URL", "GEMINI_API_KEY", "ASSETS_BUCKET", "WORKER_SECRET"):
            self.assertIn(name, message)

    def test_full_environment(self):
        s = load_settings(dict(FULL_ENV, PORT="9000", REFUND_POLICY="Always", SIGNED_URL_TTL="0"))
        self.assertEqual(s.port, 9000)
        self.assertEqual(s.refund_policy, "always")
        self.assertEqual(s.signed_url_ttl, 0)
        self.assertEqual(s.generation_timeout_seconds, 90.0)

    def test_cloud_sql_and_vertex_alternatives(self):
        env = {
            "CONNECTION_NAME": "proj:region:inst",
            "DB_USER": "worker",
            "DB_NAME": "jobs",
            "PROJECT_ID": "proj",
            "ASSETS_BUCKET": "assets",
            "AUTH_DISABLED": "true",
            "CLOUD_SQL_IP_TYPE": "private",
        }
        s = load_settings(env)
        self.assertTrue(s.auth_disabled)
        self.assertEqual(s.cloud_sql_ip_type, "PRIVATE")

    def test_bad_refund_policy(self):
        with self.assertRaises(ConfigError):
            load_settings(dict(FULL_ENV, REFUND_POLICY="never"))

    def test_malformed_number_names_the_variable(self):
        with self.assertRaises(ConfigError) as ctx:
            Settings.from_env({"PORT": "eighty"})
        self.assertIn("PORT", str(ctx.exception))
        with self.assertRaises(ConfigError) as ctx:
            load_settings(dict(FULL_ENV, GENERATION_TIMEOUT_SECONDS="1m30s"))
        self.assertIn("GENERATION_TIMEOUT_SECONDS", str(ctx.exception))

    def test_defaults(self):
        s = Settings.from_env({})
        self.assertEqual(s.port, 8080)
        self.assertEqual(s.refund_policy, "overload")
        self.assertFalse(s.log_json)


if __name__ == "__main__":
    unittest.main()
