import unittest
from unittest.mock import patch

from cardshelf.db import InMemoryRecordStore
from cardshelf.errors import NotFoundError
from cardshelf.public import PublicController
from cardshelf.storage import InMemoryStorageClient


class PublicControllerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = InMemoryRecordStore()
        self.storage = InMemoryStorageClient()
        self.public = PublicController(self.store, self.storage)
        self.public.start()

    def add(self, category, order, side, path="", **extra):
        if path:
            self.storage.stored_objects[path] = b"png"
        return self.store.add(
            {
                "category": category,
                "side": side,
                "order": order,
                "storagePath": path,
                **extra,
            }
        )

    async def test_front_and_back_share_one_pair(self):
        self.add("A", 1, "front", "p1")
        self.add("A", 1, "back", "p2")
        view = self.public.render()
        self.assertEqual(len(view.pairs), 1)
        pair = view.pairs[0]
        self.assertEqual((pair.category, pair.order), ("A", 1))
        self.assertEqual(pair.front.card.storage_path, "p1")
        self.assertEqual(pair.back.card.storage_path, "p2")
        self.assertIsNone(pair.front.placeholder)

    async def test_lone_front_renders_back_placeholder(self):
        self.add("A", 1, "front", "p1")
        pair = self.public.render().pairs[0]
        self.assertIsNone(pair.back.card)
        self.assertEqual(pair.back.placeholder, "NO BACK")

    async def test_incomplete_record_renders_as_placeholder(self):
        self.add("A", 1, "front", "")
        pair = self.public.render().pairs[0]
        self.assertIsNotNone(pair.front.card)
        self.assertEqual(pair.front.placeholder, "NO FRONT")

    async def test_soft_deleted_and_malformed_records_are_hidden(self):
        self.add("A", 1, "front", "p1", deleted=True)
        self.add("", 2, "front", "p2")
        self.add("B", "not a number", "front", "p3")
        self.assertEqual(self.public.render().pairs, [])
        self.assertEqual(self.public.render().categories, [])

    async def test_filter_by_category_and_text(self):
        self.add("A", 1, "front")
        self.add("A", 2, "front")
        self.add("B", 2, "front")
        self.public.set_filter("2", "A")
        pairs = self.public.render().pairs
        self.assertEqual([(p.category, p.order) for p in pairs], [("A", 2)])

    async def test_pairs_sorted_and_render_idempotent(self):
        self.add("B", 1, "front")
        self.add("A", 2, "front")
        self.add("A", 1, "front")
        first = self.public.render()
        self.assertEqual(
            [(p.category, p.order) for p in first.pairs], [("A", 1), ("A", 2), ("B", 1)]
        )
        self.assertEqual(self.public.render(), first)

    async def test_download_urls_resolved_once_per_path(self):
        self.add("A", 1, "front", "p1")
        self.add("A", 1, "back", "p2")
        await self.public.resolve_images()
        await self.public.resolve_images()
        self.assertEqual(sorted(self.storage.presign_calls), ["p1", "p2"])
        pair = self.public.render().pairs[0]
        self.assertIn("p1", pair.front.image_url)

    async def test_download_url_is_resigned_before_it_expires(self):
        now = [1000.0]
        public = PublicController(
            self.store, self.storage, url_expires_in=600, clock=lambda: now[0]
        )
        public.start()
        record_id = self.add("A", 1, "front", "p1")

        await public.download(record_id)
        now[0] += 500
        await public.download(record_id)
        self.assertEqual(self.storage.presign_calls, ["p1"])

        # Inside the refresh margin the cached URL is no longer served.
        now[0] += 50
        self.assertIsNone(public.render().pairs[0].front.image_url)
        await public.download(record_id)
        self.assertEqual(self.storage.presign_calls, ["p1", "p1"])
        self.assertIsNotNone(public.render().pairs[0].front.image_url)
        public.stop()

    async def test_unresolvable_image_leaves_slot_without_url(self):
        record_id = self.add("A", 1, "front", "p1")
        del self.storage.stored_objects["p1"]
        await self.public.resolve_images()
        pair = self.public.render().pairs[0]
        self.assertIsNone(pair.front.image_url)
        self.assertEqual(pair.front.card.id, record_id)

    async def test_download_synthesises_filename(self):
        record_id = self.add("Fire Set", 3, "back", "templates/x.png")
        link = await self.public.download(record_id)
        self.assertEqual(link.filename, "fire-set_order-3_back.png")
        self.assertIn("templates/x.png", link.url)

        with patch.object(self.storage, "presign_get") as presign:
            again = await self.public.download(record_id)
        presign.assert_not_called()
        self.assertEqual(again.url, link.url)

    async def test_download_without_image(self):
        record_id = self.add("A", 1, "front", "")
        with self.assertRaises(NotFoundError):
            await self.public.download(record_id)
        with self.assertRaises(NotFoundError):
            await self.public.download("missing")

    async def test_stop_clears_gallery(self):
        self.add("A", 1, "front", "p1")
        self.public.stop()
        self.assertEqual(self.public.render().pairs, [])
        self.assertEqual(self.store.subscriber_count, 0)


if __name__ == "__main__":
    unittest.main()
