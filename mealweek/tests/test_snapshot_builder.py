import unittest

from mealweek.domain.Snapshot import Snapshot
from mealweek.logic.weeks.snapshot_builder import build_snapshot


def _item(client, day, approved=True, **extra):
    item = {
        "id": f"{client}-{day}",
        "clientName": client,
        "date": day,
        "protein": "Chicken",
        "veg": "Broccoli",
        "starch": "Rice",
        "extras": [],
        "portions": 2,
        "approved": approved,
    }
    item.update(extra)
    return item


ALICE = {
    "name": "Alice",
    "subscriptionId": "sub-alice",
    "portions": 2,
    "contacts": [
        {"fullName": "Alice A", "address": "12 Main St"},
        {"fullName": "Sam A", "address": "12 main st "},
    ],
}
BOB = {"name": "Bob", "address": "5 Pine Rd"}


class TestSnapshotBuilder(unittest.TestCase):
    def test_only_approved_items_inside_week(self):
        items = [
            _item("Alice", "2026-01-20"),
            _item("Alice", "2026-01-22"),
            _item("Bob", "2026-01-21", approved=False),
        ]
        snap = build_snapshot("2026-W04", items, [ALICE, BOB])
        self.assertEqual(list(snap.menu.keys()), ["Alice"])
        self.assertEqual(len(snap.menu["Alice"]), 2)
        self.assertNotIn("Bob", snap.menu)

    def test_approved_item_outside_week_excluded(self):
        items = [_item("Alice", "2026-01-26"), _item("Alice", "2026-01-18")]
        snap = build_snapshot("2026-W04", items, [ALICE])
        self.assertEqual(dict(snap.menu), {})
        self.assertEqual(snap.stops, ())

    def test_truthy_but_not_true_approval_is_excluded(self):
        snap = build_snapshot("2026-W04", [_item("Alice", "2026-01-20", approved="yes")], [ALICE])
        self.assertNotIn("Alice", snap.menu)

    def test_unparseable_date_is_excluded(self):
        items = [_item("Alice", "sometime"), _item("Alice", None), _item("Alice", "2026-01-21")]
        snap = build_snapshot("2026-W04", items, [ALICE])
        self.assertEqual(len(snap.menu["Alice"]), 1)

    def test_menu_entry_fields(self):
        snap = build_snapshot("2026-W04", [_item("Alice", "2026-01-20", extras=["Salad"])], [ALICE])
        entry = snap.to_dict()["menu"]["Alice"][0]
        self.assertEqual(set(entry), {"id", "date", "protein", "veg", "starch", "extras", "portions"})
        self.assertEqual(entry["extras"], ["Salad"])

    def test_stops_deduplicated_by_normalized_address(self):
        snap = build_snapshot("2026-W04", [_item("Alice", "2026-01-20")], [ALICE])
        self.assertEqual(len(snap.stops), 1)
        stop = snap.stops[0]
        self.assertEqual(stop["address"], "12 Main St")
        self.assertEqual(len(stop["contacts"]), 2)
        self.assertEqual(stop["stopIndex"], 0)
        self.assertEqual(stop["subscriptionId"], "sub-alice")

    def test_distinct_addresses_make_distinct_stops(self):
        client = {
            "name": "Eve",
            "subscriptionId": "sub-eve",
            "contacts": [
                {"fullName": "Eve", "address": "1 A St"},
                {"fullName": "Ed", "address": "2 B St"},
                {"fullName": "No Address", "address": "  "},
            ],
        }
        snap = build_snapshot("2026-W04", [_item("Eve", "2026-01-20")], [client])
        self.assertEqual([s["address"] for s in snap.stops], ["1 A St", "2 B St"])
        self.assertEqual([s["stopIndex"] for s in snap.stops], [0, 1])

    def test_pickup_client_has_no_stops(self):
        client = dict(ALICE, pickup=True)
        snap = build_snapshot("2026-W04", [_item("Alice", "2026-01-20")], [client])
        self.assertEqual(snap.stops, ())
        self.assertTrue(snap.subscriptions["Alice"]["pickup"])

    def test_legacy_client_stop_from_flat_address(self):
        snap = build_snapshot("2026-W04", [_item("Bob", "2026-01-20")], [BOB])
        self.assertEqual(len(snap.stops), 1)
        self.assertEqual(snap.stops[0]["address"], "5 Pine Rd")
        self.assertEqual(snap.subscriptions["Bob"]["subscriptionId"], "Bob")

    def test_unresolved_client_keeps_menu_only(self):
        with self.assertLogs("mealweek.logic.weeks.snapshot_builder", level="WARNING"):
            snap = build_snapshot("2026-W04", [_item("Ghost", "2026-01-20")], [ALICE])
        self.assertIn("Ghost", snap.menu)
        self.assertNotIn("Ghost", snap.subscriptions)
        self.assertEqual(snap.stops, ())

    def test_resolves_by_display_name(self):
        client = {"name": "Acct 7", "displayName": "The Smiths", "address": "3 Birch Ln"}
        snap = build_snapshot("2026-W04", [_item("The Smiths", "2026-01-20")], [client])
        self.assertEqual(snap.stops[0]["clientName"], "The Smiths")

    def test_deterministic_and_immutable(self):
        items = [_item("Alice", "2026-01-20"), _item("Bob", "2026-01-21")]
        first = build_snapshot("2026-W04", items, [ALICE, BOB])
        second = build_snapshot("2026-W04", items, [ALICE, BOB])
        self.assertEqual(first, second)
        self.assertEqual(first.to_json(), second.to_json())
        with self.assertRaises(TypeError):
            first.menu["Alice"] = []
        with self.assertRaises(AttributeError):
            first.menu = {}

    def test_snapshot_does_not_share_state_with_inputs(self):
        items = [_item("Alice", "2026-01-20")]
        snap = build_snapshot("2026-W04", items, [ALICE])
        items[0]["protein"] = "Tofu"
        self.assertEqual(snap.menu["Alice"][0]["protein"], "Chicken")
        copy = snap.to_dict()
        copy["menu"]["Alice"].clear()
        self.assertEqual(len(snap.menu["Alice"]), 1)

    def test_round_trips_through_dict(self):
        snap = build_snapshot("2026-W04", [_item("Alice", "2026-01-20")], [ALICE])
        self.assertEqual(Snapshot.from_dict(snap.to_dict()), snap)


if __name__ == "__main__":
    unittest.main()
