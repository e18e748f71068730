from bson import ObjectId

import catalog
import errors
import orders
from schemas import (
    CreateOrderRequest,
    ImageRef,
    OrderItem,
    ProductRequest,
    UpdatePaymentRequest,
    UpdateStatusRequest,
)
from tests.base import MongoTestCase

ADDRESS = {
    "name": "Alice",
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip": "62701",
    "country": "US",
    "phone": "555-0100",
}


class OrderTestCase(MongoTestCase):
    def setUp(self):
        super().setUp()
        self.user = self.make_user()
        self.admin = self.make_user(email="admin@example.com", role="admin", name="Admin")
        self.category = self.make_category()
        self.product = self.make_product(self.category["id"], name="Chrono", price=20.0)

    def order_request(self, payment_method="Credit Card", quantity=2, **overrides):
        body = {
            "order_items": [
                {
                    "product_id": self.product["id"],
                    "name": "Chrono",
                    "quantity": quantity,
                    "price": 20.0,
                    "image": self.product["image"]["url"],
                }
            ],
            "shipping_address": ADDRESS,
            "payment_method": payment_method,
            "subtotal": 40.0,
            "shipping_cost": 5.99,
            "tax": 3.2,
            "total": 49.19,
        }
        body.update(overrides)
        return CreateOrderRequest(**body)

    def place(self, user=None, **kwargs):
        user = user or self.user
        return orders.create_order(user["id"], self.order_request(**kwargs), self.settings)

    # ---------- creation ----------

    def test_create_order_defaults(self):
        order = self.place(payment_method="Cash on Delivery")
        self.assertEqual(order["status"], "Processing")
        self.assertEqual(order["tracking_number"], "Pending")
        self.assertFalse(order["is_paid"])
        self.assertIsNone(order["payment_result"])
        self.assertFalse(order["is_delivered"])
        self.assertEqual(order["total"], 49.19)
        self.assertEqual(order["shipping_address"], ADDRESS)
        self.assertEqual(order["user"]["email"], "alice@example.com")
        self.assertEqual(order["order_id"], "ORD-" + order["id"][-6:].upper())

    def test_non_cod_orders_are_marked_paid(self):
        order = self.place(payment_method="Credit Card")
        self.assertTrue(order["is_paid"])
        self.assertIsNotNone(order["paid_at"])
        self.assertEqual(order["payment_result"]["status"], "COMPLETED")
        self.assertEqual(order["payment_result"]["email_address"], "alice@example.com")

    def test_empty_items_rejected(self):
        with self.assertRaises(errors.ValidationError):
            orders.create_order(self.user["id"], self.order_request(order_items=[]), self.settings)
        self.assertEqual(self.db["order"].count_documents({}), 0)

    def test_missing_item_snapshot_field_rejected(self):
        request = self.order_request(order_items=[{"product_id": self.product["id"], "quantity": 1}])
        with self.assertRaises(errors.ValidationError) as ctx:
            orders.create_order(self.user["id"], request, self.settings)
        self.assertIn("name", ctx.exception.message)

    def test_order_is_recorded_in_user_history(self):
        order = self.place()
        stored = self.db["user"].find_one({"email": "alice@example.com"})
        self.assertEqual(stored["orders"], [order["id"]])

    def test_items_are_snapshots(self):
        order = self.place()
        catalog.update_product(
            self.product["id"],
            ProductRequest(
                name="Chrono Renamed",
                price=99.0,
                description="changed",
                category_id=self.category["id"],
                image=ImageRef(public_id="p", url="https://img.example.com/other.jpg"),
            ),
        )
        again = orders.get_order(order["id"], self.user["id"], "user")
        self.assertEqual(again["order_items"][0]["name"], "Chrono")
        self.assertEqual(again["order_items"][0]["price"], 20.0)

    def test_recomputed_totals(self):
        settings = self.settings.model_copy(update={"recompute_order_totals": True})
        request = self.order_request(
            order_items=[{"product_id": self.product["id"], "quantity": 3, "price": 0.01, "name": "fake"}],
            subtotal=0,
            tax=0,
            total=0,
        )
        order = orders.create_order(self.user["id"], request, settings)
        self.assertEqual(order["order_items"][0]["price"], 20.0)
        self.assertEqual(order["order_items"][0]["name"], "Chrono")
        self.assertEqual(order["subtotal"], 60.0)
        self.assertEqual(order["shipping_cost"], 5.99)
        self.assertEqual(order["tax"], 4.8)
        self.assertEqual(order["total"], 70.79)

    def test_compute_totals(self):
        items = [
            OrderItem(product_id="a", name="A", quantity=2, price=10.0, image="x"),
            OrderItem(product_id="b", name="B", quantity=1, price=5.5, image="y"),
        ]
        totals = orders.compute_totals(items, self.settings)
        self.assertEqual(totals, {"subtotal": 25.5, "shipping_cost": 5.99, "tax": 2.04, "total": 33.53})

    # ---------- reading ----------

    def test_listing_is_scoped_by_role(self):
        mine = self.place()
        other_user = self.make_user(email="bob@example.com", name="Bob")
        theirs = self.place(user=other_user)

        own = orders.list_orders(self.user["id"], "user")
        self.assertEqual([o["id"] for o in own], [mine["id"]])
        self.assertTrue(all(o["user_id"] == self.user["id"] for o in own))

        everything = orders.list_orders(self.admin["id"], "admin")
        self.assertEqual([o["id"] for o in everything], [theirs["id"], mine["id"]])

    def test_get_order_access(self):
        order = self.place()
        other_user = self.make_user(email="bob@example.com", name="Bob")

        with self.assertRaises(errors.Forbidden):
            orders.get_order(order["id"], other_user["id"], "user")
        self.assertEqual(orders.get_order(order["id"], self.admin["id"], "admin")["id"], order["id"])
        with self.assertRaises(errors.NotFound):
            orders.get_order(str(ObjectId()), self.user["id"], "user")

    # ---------- cancellation ----------

    def test_cancel_processing_order(self):
        order = self.place()
        cancelled = orders.cancel_order(order["id"], self.user["id"], "user")
        self.assertEqual(cancelled["status"], "Cancelled")

        # cancelling twice is harmless
        again = orders.cancel_order(order["id"], self.user["id"], "user")
        self.assertEqual(again["status"], "Cancelled")

    def test_cancel_delivered_order_fails(self):
        order = self.place()
        orders.update_status(order["id"], UpdateStatusRequest(status="Delivered"), self.settings)
        with self.assertRaises(errors.InvalidTransition):
            orders.cancel_order(order["id"], self.user["id"], "user")
        with self.assertRaises(errors.InvalidTransition):
            orders.cancel_order(order["id"], self.admin["id"], "admin")
        self.assertEqual(orders.get_order(order["id"], self.user["id"], "user")["status"], "Delivered")

    def test_cancel_someone_elses_order(self):
        order = self.place()
        other_user = self.make_user(email="bob@example.com", name="Bob")
        with self.assertRaises(errors.Forbidden):
            orders.cancel_order(order["id"], other_user["id"], "user")

    # ---------- admin transitions ----------

    def test_delivered_sets_flag_and_timestamp(self):
        order = self.place()
        updated = orders.update_status(
            order["id"], UpdateStatusRequest(status="Delivered", tracking_number="TRK-1"), self.settings
        )
        self.assertEqual(updated["status"], "Delivered")
        self.assertTrue(updated["is_delivered"])
        self.assertIsNotNone(updated["delivered_at"])
        self.assertEqual(updated["tracking_number"], "TRK-1")

    def test_strict_transitions(self):
        strict = self.settings.model_copy(update={"enforce_status_transitions": True})
        order = self.place()
        with self.assertRaises(errors.InvalidTransition):
            orders.update_status(order["id"], UpdateStatusRequest(status="Delivered"), strict)

        orders.update_status(order["id"], UpdateStatusRequest(status="Shipped"), strict)
        delivered = orders.update_status(order["id"], UpdateStatusRequest(status="Delivered"), strict)
        self.assertTrue(delivered["is_delivered"])

        with self.assertRaises(errors.InvalidTransition):
            orders.update_status(order["id"], UpdateStatusRequest(status="Processing"), strict)

    def test_update_payment_status(self):
        order = self.place(payment_method="Cash on Delivery")
        paid = orders.update_payment_status(order["id"], UpdatePaymentRequest())
        self.assertTrue(paid["is_paid"])
        self.assertTrue(paid["payment_result"]["id"].startswith("MANUAL-"))
        self.assertEqual(paid["payment_result"]["email_address"], "manual@update.com")

        given = orders.update_payment_status(
            order["id"], UpdatePaymentRequest(payment_result={"id": "PAY-9", "status": "COMPLETED"})
        )
        self.assertEqual(given["payment_result"]["id"], "PAY-9")

        unpaid = orders.update_payment_status(order["id"], UpdatePaymentRequest(is_paid=False))
        self.assertFalse(unpaid["is_paid"])
        self.assertIsNone(unpaid["paid_at"])
        self.assertIsNone(unpaid["payment_result"])

    def test_update_unknown_order(self):
        with self.assertRaises(errors.NotFound):
            orders.update_status(str(ObjectId()), UpdateStatusRequest(status="Shipped"), self.settings)
        with self.assertRaises(errors.NotFound):
            orders.update_payment_status(str(ObjectId()), UpdatePaymentRequest())
