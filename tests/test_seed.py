from auth import verify_password
from seed import SAMPLE_PRODUCTS, seed


class TestSeed:
    def test_products_carry_images(self, mongo):
        seed()
        products = list(mongo["product"].find())
        assert len(products) == len(SAMPLE_PRODUCTS)
        assert all(p["images"] and p["images"][0].startswith("https://") for p in products)
        assert all(p["status"] == "active" for p in products)

    def test_users_can_log_in(self, mongo):
        seed()
        admin = mongo["user"].find_one({"email": "admin@webshop.com"})
        assert admin["role"] == "admin"
        assert verify_password("admin123", admin["password_hash"])

    def test_reseeding_replaces_data(self, mongo):
        seed()
        seed()
        assert mongo["product"].count_documents({}) == len(SAMPLE_PRODUCTS)
        assert mongo["user"].count_documents({}) == 2
