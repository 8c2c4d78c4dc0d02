import pytest

from extracto.strategies import FalabellaStrategy, GenericStrategy

FALABELLA_URL = "https://www.falabella.com.pe/falabella-pe/category/cat40052/Celulares"


def _falabella_record(**overrides):
    record = {
        "productId": "123",
        "skuId": "123-1",
        "displayName": "Phone X",
        "brand": "ACME",
        "url": "https://www.falabella.com.pe/falabella-pe/product/123/phone-x",
        "mediaUrls": ["https://media/1.jpg", "https://media/2.jpg"],
        "prices": [
            {"type": "cmrPrice", "price": ["899"], "symbol": "S/ "},
            {"type": "internetPrice", "price": ["999"], "symbol": "S/ ", "label": "Internet", "crossed": False},
        ],
        "rating": 4.5,
        "totalReviews": "12",
        "availability": {"homeDeliveryShipping": "", "pickUpFromStoreShipping": "yes"},
        "meatStickers": [{"type": "next_day"}],
        "topSpecifications": ["6GB RAM", "128GB"],
        "sellerId": "FALABELLA",
        "sellerName": "Falabella",
        "badges": [{"type": "EVENT", "label": "Cyber"}],
        "variants": [{"type": "COLOR", "options": [{"label": "Black"}]}],
    }
    record.update(overrides)
    return record


def test_falabella_maps_next_data_blob():
    payload = {"props": {"pageProps": {"results": [_falabella_record()]}}}
    strategy = FalabellaStrategy()

    assert strategy.can_handle(payload, "https://elsewhere.com")
    products = strategy.extract(payload, FALABELLA_URL, "job-1")

    assert len(products) == 1
    product = products[0]
    assert product.product_id == "123"
    assert product.name == "Phone X"
    assert product.brand == "ACME"
    assert product.price.amount == pytest.approx(999)
    assert product.price.currency == "PEN"
    assert product.price.type == "internetPrice"
    assert product.rating.value == pytest.approx(4.5)
    assert product.rating.total_reviews == 12
    assert product.media.primary_image_url == "https://media/1.jpg"
    assert product.availability.home_delivery is False
    assert product.availability.pick_up_from_store is True
    assert product.availability.next_day is True
    assert product.specifications == {"spec_1": "6GB RAM", "spec_2": "128GB"}
    assert product.seller.id == "FALABELLA"
    assert product.badges[0].label == "Cyber"
    assert product.variants[0].type == "COLOR"
    assert product.source.domain == "falabella"
    assert product.source.job_id == "job-1"
    assert product.raw_data["skuId"] == "123-1"


def test_falabella_price_without_internet_entry_uses_first():
    record = _falabella_record(prices=[{"type": "normalPrice", "price": ["1,499"], "symbol": "S/ "}])
    product = FalabellaStrategy().extract([record], FALABELLA_URL)[0]
    assert product.price.amount == pytest.approx(1499)
    assert product.price.type == "normalPrice"


def test_falabella_scalar_price_fallback():
    record = _falabella_record(prices=None, price="S/ 50.90")
    product = FalabellaStrategy().extract([record], FALABELLA_URL)[0]
    assert product.price.amount == pytest.approx(50.90)
    assert product.price.currency == "PEN"


def test_falabella_missing_shipping_keys_count_as_available():
    record = _falabella_record(availability={})
    product = FalabellaStrategy().extract([record], FALABELLA_URL)[0]
    assert product.availability.home_delivery is True
    assert product.availability.international is True


def test_falabella_drops_malformed_records():
    payload = {
        "pageProps": {
            "results": [
                _falabella_record(),
                {"productId": "no-name"},
                "not a record",
                _falabella_record(productId="456", displayName="Tablet"),
            ]
        }
    }
    products = FalabellaStrategy().extract(payload, FALABELLA_URL)
    assert [p.product_id for p in products] == ["123", "456"]


def test_falabella_can_handle_bare_result_arrays():
    strategy = FalabellaStrategy()
    assert strategy.can_handle([{"displayName": "A", "mediaUrls": []}], "https://x.com")
    assert strategy.can_handle({}, FALABELLA_URL)
    assert not strategy.can_handle([{"name": "A"}], "https://x.com")
    assert not strategy.can_handle([], "https://x.com")


def test_generic_maps_bare_array():
    products = GenericStrategy().extract([{"id": "a1", "name": "Widget", "price": "$19.99"}], "https://shop.io/x")
    assert len(products) == 1
    assert products[0].product_id == "a1"
    assert products[0].price.amount == pytest.approx(19.99)
    assert products[0].price.currency == "USD"
    assert products[0].source.domain == "shop"
    assert products[0].rating is None


@pytest.mark.parametrize("key", ["products", "items", "results"])
def test_generic_finds_wrapped_arrays(key):
    payload = {key: [{"sku": "s1", "title": "Lamp", "currentPrice": 20}]}
    products = GenericStrategy().extract(payload, "https://lamps.com")
    assert [p.product_id for p in products] == ["s1"]
    assert products[0].name == "Lamp"


def test_generic_single_object_and_aliases():
    item = {
        "productId": 77,
        "productName": "Chair",
        "salePrice": "R$ 150,00",
        "brand": {"name": "Seats"},
        "category": "Furniture",
        "images": [{"url": "https://img/1.jpg"}, "https://img/2.jpg"],
        "averageRating": "4.0",
        "reviewCount": 3,
        "inStock": False,
        "link": "https://store.com/chair",
    }
    products = GenericStrategy().extract(item, "https://store.com")
    assert len(products) == 1
    product = products[0]
    assert product.product_id == "77"
    assert product.brand == "Seats"
    assert product.category == "Furniture"
    assert product.price.currency == "BRL"
    assert product.media.urls == ["https://img/1.jpg", "https://img/2.jpg"]
    assert product.rating.total_reviews == 3
    assert product.availability.home_delivery is False
    assert product.seo_url == "https://store.com/chair"


def test_generic_ignores_objects_that_do_not_look_like_products():
    assert GenericStrategy().extract({"status": "ok", "count": 3}, "https://x.com") == []
    assert GenericStrategy().extract([{"id": "1"}, {"name": "no id"}, 5], "https://x.com") == []


def test_generic_explicit_currency_code_wins():
    products = GenericStrategy().extract(
        [{"id": "1", "name": "A", "price": "$10", "currency": "pen"}], "https://x.com"
    )
    assert products[0].price.currency == "PEN"
