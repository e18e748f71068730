import pydantic
from bson import ObjectId

import catalog
import errors
from schemas import CategoryRequest, ProductRequest
from tests.base import IMAGE, MongoTestCase


class CategoryTestCase(MongoTestCase):
    def test_create_and_list_newest_first(self):
        self.make_category("Watches")
        self.make_category("Shoes")
        names = [c["name"] for c in catalog.list_categories()]
        self.assertEqual(names, ["Shoes", "Watches"])

    def test_duplicate_name_conflicts(self):
        self.make_category("Watches")
        with self.assertRaises(errors.Conflict):
            self.make_category("Watches")

    def test_rename_onto_existing_name_conflicts(self):
        self.make_category("Watches")
        shoes = self.make_category("Shoes")
        with self.assertRaises(errors.Conflict):
            catalog.update_category(shoes["id"], CategoryRequest(name="Watches", description="x"))

        renamed = catalog.update_category(shoes["id"], CategoryRequest(name="Sneakers", description="Running"))
        self.assertEqual(renamed["name"], "Sneakers")

    def test_length_limits(self):
        with self.assertRaises(pydantic.ValidationError):
            CategoryRequest(name="x" * 51, description="ok")
        with self.assertRaises(pydantic.ValidationError):
            CategoryRequest(name="ok", description="x" * 501)

    def test_delete_refused_while_products_reference_it(self):
        category = self.make_category()
        product = self.make_product(category["id"])
        with self.assertRaises(errors.Conflict):
            catalog.delete_category(category["id"])

        catalog.delete_product(product["id"])
        catalog.delete_category(category["id"])
        self.assertEqual(catalog.list_categories(), [])

    def test_delete_unknown(self):
        with self.assertRaises(errors.NotFound):
            catalog.delete_category(str(ObjectId()))


class ProductTestCase(MongoTestCase):
    def setUp(self):
        super().setUp()
        self.category = self.make_category()

    def test_list_resolves_category_inline(self):
        self.make_product(self.category["id"], name="First")
        self.make_product(self.category["id"], name="Second")

        products = catalog.list_products()
        self.assertEqual([p["name"] for p in products], ["Second", "First"])
        for p in products:
            self.assertEqual(p["category"]["name"], "Watches")
            self.assertEqual(p["category"]["id"], self.category["id"])

    def test_missing_image_url_is_rejected(self):
        with self.assertRaises(pydantic.ValidationError):
            ProductRequest(
                name="Chrono",
                price=10,
                description="d",
                category_id=self.category["id"],
                image={"public_id": "shop/abc"},
            )
        with self.assertRaises(errors.ValidationError):
            catalog.ensure_product_image({"name": "Chrono", "image": {"public_id": "shop/abc", "url": ""}})
        with self.assertRaises(errors.ValidationError):
            catalog.ensure_product_image({"name": "Chrono"})
        self.assertEqual(self.db["product"].count_documents({}), 0)

    def test_negative_price_is_rejected(self):
        with self.assertRaises(pydantic.ValidationError):
            ProductRequest(
                name="Chrono", price=-1, description="d", category_id=self.category["id"], image=IMAGE
            )

    def test_unknown_category_is_rejected(self):
        with self.assertRaises(errors.ValidationError):
            self.make_product(str(ObjectId()))
        with self.assertRaises(errors.ValidationError):
            self.make_product("not-an-id")

    def test_get_update_delete(self):
        product = self.make_product(self.category["id"])
        self.assertEqual(catalog.get_product(product["id"])["name"], "Chrono")

        updated = catalog.update_product(
            product["id"],
            ProductRequest(
                name="Chrono II",
                price=150,
                description="Updated",
                category_id=self.category["id"],
                image=IMAGE,
            ),
        )
        self.assertEqual(updated["name"], "Chrono II")
        self.assertEqual(updated["price"], 150)

        catalog.delete_product(product["id"])
        with self.assertRaises(errors.NotFound):
            catalog.get_product(product["id"])
        with self.assertRaises(errors.NotFound):
            catalog.delete_product(product["id"])
