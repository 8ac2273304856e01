import threading
import unittest

from fakes import TempStore

from workers.generator.status import JobStatus


def run_concurrently(fn, n):
    barrier = threading.Barrier(n)
    results, errors = [], []

    def target():
        barrier.wait()
        try:
            results.append(fn())
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=target) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)
    return results, errors


class JobStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = TempStore()
        self.store = self.tmp.store

    def tearDown(self):
        self.tmp.close()

    def test_claim_next_on_empty_queue(self):
        self.assertIsNone(self.store.claim_next())

    def test_claim_next_moves_pending_to_processing(self):
        job = self.store.enqueue("generate-image", {"prompt": "a red cube"}, user_id="u1", cost=5, job_id="j1")
        self.assertEqual(job.status, JobStatus.PENDING)
        claimed = self.store.claim_next()
        self.assertEqual(claimed.id, "j1")
        self.assertEqual(claimed.status, JobStatus.PROCESSING)
        self.assertEqual(claimed.input, {"prompt": "a red cube"})
        self.assertEqual(claimed.attempts, 1)
        self.assertIsNone(self.store.claim_next())

    def test_at_most_one_claim(self):
        self.store.enqueue("generate-image", {"prompt": "x"}, job_id="only")
        results, errors = run_concurrently(self.store.claim_next, 8)
        self.assertEqual(errors, [])
        claimed = [r for r in results if r is not None]
        self.assertEqual(len(results), 8)
        self.assertEqual([j.id for j in claimed], ["only"])

    def test_claim_by_id_only_from_pending(self):
        self.store.enqueue("generate-image", job_id="p1")
        self.assertEqual(self.store.claim("p1").status, JobStatus.PROCESSING)
        self.assertIsNone(self.store.claim("p1"))
        self.assertIsNone(self.store.claim("missing"))

    def test_complete_is_idempotent(self):
        self.store.enqueue("generate-image", job_id="j1")
        self.store.claim_next()
        self.assertTrue(self.store.complete("j1", {"imageUrl": "https://store/x.png"}))
        self.assertFalse(self.store.complete("j1", {"imageUrl": "other"}))
        job = self.store.get("j1")
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.result, {"imageUrl": "https://store/x.png"})

    def test_single_terminal_write(self):
        self.store.enqueue("generate-image", job_id="j1")
        self.store.claim_next()
        writes = [
            self.store.fail("j1", "boom"),
            self.store.cancel("j1", "overloaded"),
            self.store.complete("j1", {}),
        ]
        self.assertEqual(writes, [True, False, False])
        job = self.store.get("j1")
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, "boom")

    def test_writes_require_processing(self):
        self.store.enqueue("generate-image", job_id="j1")
        self.assertFalse(self.store.complete("j1", {}))
        self.assertFalse(self.store.cancel("j1", "r"))
        self.assertEqual(self.store.get("j1").status, JobStatus.PENDING)

    def test_concurrent_cancel_changes_once(self):
        self.store.enqueue("generate-image", job_id="j1")
        self.store.claim_next()
        results, errors = run_concurrently(lambda: self.store.cancel("j1", "overloaded"), 4)
        self.assertEqual(errors, [])
        self.assertEqual(sorted(results), [False, False, False, True])

    def test_refund_once_per_job(self):
        self.assertTrue(self.store.refund("u1", 5, {"job_id": "j1"}))
        self.assertFalse(self.store.refund("u1", 5, {"job_id": "j1"}))
        self.assertTrue(self.store.refund("u1", 3, {"job_id": "j2"}))
        self.assertEqual(self.store.balance("u1"), 8)
        self.assertEqual(self.store.balance("nobody"), 0)

    def test_cancel_and_refund_commit_together(self):
        self.store.enqueue("generate-image", user_id="u1", cost=5, job_id="j1")
        self.assertFalse(self.store.cancel_and_refund("j1", "overloaded", "u1", 5))
        self.assertEqual(self.store.balance("u1"), 0)

        self.store.claim("j1")
        self.assertTrue(self.store.cancel_and_refund("j1", "overloaded", "u1", 5, {"reason": "overloaded"}))
        self.assertFalse(self.store.cancel_and_refund("j1", "overloaded", "u1", 5))
        self.assertEqual(self.store.get("j1").status, JobStatus.CANCELLED)
        self.assertEqual(self.store.balance("u1"), 5)
        self.assertFalse(self.store.refund("u1", 5, {"job_id": "j1"}))

    def test_get_missing(self):
        self.assertIsNone(self.store.get("nope"))


if __name__ == "__main__":
    unittest.main()
