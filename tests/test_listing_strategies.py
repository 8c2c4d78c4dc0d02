import json

import pytest

from extracto.extractor import build_listing_extractor
from extracto.strategies import GenericListingStrategy, UrbaniaStrategy
from extracto.strategies.listing_base import id_from_url, parse_details_text

SEARCH_URL = "https://urbania.pe/buscar/alquiler-de-departamentos-en-lima"

CARDS_HTML = """
<html><body>
  <div class="listing-card" data-property-id="101">
    <h2 class="title"><a href="/inmueble/departamento-en-alquiler-101">Departamento en Miraflores</a></h2>
    <p class="description">Vista al mar</p>
    <div class="price">S/ 2,500</div>
    <div class="location">Miraflores, Lima, Lima</div>
    <div class="details">3 dorm · 2 baños · 1 estac · 120 m²</div>
    <img src="/img/101.jpg"><img src="/static/logo.png">
  </div>
  <div class="property-card">
    <h3><a href="https://urbania.pe/inmueble/casa-en-venta-la-molina">Casa en La Molina</a></h3>
    <span class="property-price">US$ 350,000</span>
    <div class="address">La Molina, Lima</div>
    <ul class="features"><li>4 hab</li><li>300 m2</li></ul>
  </div>
  <div data-property-id="303"><span class="price">S/ 100</span></div>
  <div class="listing-card">
    <div data-property-id="404"><h2>Oficina en San Isidro</h2></div>
  </div>
</body></html>
"""

JSON_LD_HTML = """
<html><head>
<script type="application/ld+json">{not valid json</script>
<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "RealEstateListing",
  "name": "Resultados",
  "mainEntity": [
    {
      "@type": "Apartment",
      "name": "Departamento en Barranco",
      "url": "https://urbania.pe/inmueble/clasificado/555-departamento-barranco",
      "offers": {"@type": "AggregateOffer", "lowPrice": "1800", "highPrice": "2100", "priceCurrency": "USD"},
      "contentLocation": {"name": "Barranco"},
      "image": "https://img.urbania.pe/555.jpg"
    }
  ]
}
</script>
</head><body>
  <div class="listing-card" data-property-id="999"><h2>Ignored when JSON-LD is present</h2></div>
</body></html>
"""


def test_urbania_claims_by_url_only():
    strategy = UrbaniaStrategy()
    assert strategy.can_handle("<html></html>", SEARCH_URL)
    assert not strategy.can_handle("<html></html>", "https://www.adondevivir.com/x")


def test_urbania_cards():
    listings = UrbaniaStrategy().extract(CARDS_HTML, SEARCH_URL, "job-7")

    assert [l.listing_id for l in listings] == ["101", "casa-en-venta-la-molina", "404"]

    depa = listings[0]
    assert depa.title == "Departamento en Miraflores"
    assert depa.description == "Vista al mar"
    assert depa.listing_type == "rent"
    assert depa.property_type == "apartment"
    assert depa.price.amount == pytest.approx(2500)
    assert depa.price.currency == "PEN"
    assert depa.price.period == "monthly"
    assert depa.location.district == "Miraflores"
    assert depa.location.city == "Lima"
    assert depa.location.region == "Lima"
    assert depa.location.country == "Peru"
    assert depa.details.bedrooms == 3
    assert depa.details.bathrooms == 2
    assert depa.details.parking_spaces == 1
    assert depa.details.total_area == pytest.approx(120)
    assert depa.images == ["https://urbania.pe/img/101.jpg"]
    assert depa.source.domain == "urbania"
    assert depa.source.url == "https://urbania.pe/inmueble/departamento-en-alquiler-101"
    assert depa.source.job_id == "job-7"

    casa = listings[1]
    assert casa.listing_type == "sale"
    assert casa.property_type == "house"
    assert casa.price.amount == pytest.approx(350000)
    assert casa.price.currency == "USD"
    assert casa.price.period == "one_time"
    assert casa.details.bedrooms == 4
    assert casa.details.total_area == pytest.approx(300)
    assert casa.location.district == "La Molina"
    assert casa.images is None


def test_urbania_prefers_json_ld():
    listings = UrbaniaStrategy().extract({"html": JSON_LD_HTML}, SEARCH_URL)

    assert len(listings) == 1
    listing = listings[0]
    assert listing.listing_id == "555"
    assert listing.title == "Departamento en Barranco"
    assert listing.property_type == "apartment"
    assert listing.price.amount == pytest.approx(1800)
    assert listing.price.currency == "USD"
    assert listing.location.district == "Barranco"
    assert listing.images == ["https://img.urbania.pe/555.jpg"]


def test_urbania_json_ld_single_entity_with_relative_url():
    block = {
        "@type": "RealEstateListing",
        "name": "Casa de playa",
        "url": "/inmueble/777",
        "offers": {"@type": "Offer", "price": "S/ 900,000"},
    }
    html = f'<script type="application/ld+json">{json.dumps(block)}</script>'
    listings = UrbaniaStrategy().extract(html, SEARCH_URL)

    assert [l.listing_id for l in listings] == ["777"]
    assert listings[0].source.url == "https://urbania.pe/inmueble/777"
    assert listings[0].price.amount == pytest.approx(900000)
    assert listings[0].price.currency == "PEN"
    assert listings[0].property_type == "house"


def test_urbania_pre_parsed_json():
    payload = {
        "listings": [
            {
                "id": 11,
                "title": "Depa en Surco",
                "type": "alquiler",
                "propertyType": "departamento",
                "price": {"amount": "2,000", "currency": "pen"},
                "location": {"district": "Surco", "city": "Lima", "coordinates": {"lat": -12.1, "lng": -77.0}},
                "bedrooms": "2",
                "bathrooms": 1,
                "parkingSpaces": 1,
                "totalArea": "85.5",
                "images": ["https://img/11.jpg"],
            },
            {"listingId": "12", "price": 150000, "type": "venta", "lat": "-12.0", "lng": "-77.1"},
            {"title": "no id"},
        ]
    }
    listings = UrbaniaStrategy().extract(payload, SEARCH_URL)

    assert [l.listing_id for l in listings] == ["11", "12"]
    depa, untitled = listings
    assert depa.listing_type == "rent"
    assert depa.property_type == "apartment"
    assert depa.price.amount == pytest.approx(2000)
    assert depa.price.currency == "PEN"
    assert depa.price.period == "monthly"
    assert depa.location.coordinates.lat == pytest.approx(-12.1)
    assert depa.details.bedrooms == 2
    assert depa.details.total_area == pytest.approx(85.5)
    assert depa.raw_data["id"] == 11

    assert untitled.title == "Sin título"
    assert untitled.listing_type == "sale"
    assert untitled.price.currency == "PEN"
    assert untitled.location.coordinates.lng == pytest.approx(-77.1)


def test_generic_listing_fallback():
    strategy = GenericListingStrategy()
    assert strategy.can_handle({}, "https://anything.com")

    listings = strategy.extract(
        [{"id": "a", "title": "Loft", "price": "$1,200"}, {"id": "b"}],
        "https://www.adondevivir.com/departamentos",
    )
    assert [l.listing_id for l in listings] == ["a"]
    assert listings[0].price.currency == "USD"
    assert listings[0].source.domain == "adondevivir"
    assert listings[0].location.country is None

    assert strategy.extract(JSON_LD_HTML, "https://x.com")[0].listing_id == "555"
    assert strategy.extract("<html><div class='listing-card'><h2>x</h2></div></html>", "https://x.com") == []


def test_parse_details_text():
    details = parse_details_text("2 Dormitorios, 1 Baño, 2 Estacionamientos, 75.5 m²")
    assert details.bedrooms == 2
    assert details.bathrooms == 1
    assert details.parking_spaces == 2
    assert details.total_area == pytest.approx(75.5)
    assert parse_details_text("").bedrooms is None


@pytest.mark.parametrize(
    "href, expected",
    [
        ("https://urbania.pe/inmueble/123-depa", "123"),
        ("/inmueble/clasificado/veclapin-departamento", "veclapin-departamento"),
        ("https://urbania.pe/", None),
        ("", None),
    ],
)
def test_id_from_url(href, expected):
    assert id_from_url(href) == expected


def _json_ld_page(*entities):
    block = {"@context": "https://schema.org", "@type": "RealEstateListing", "mainEntity": list(entities)}
    return f'<html><head><script type="application/ld+json">{json.dumps(block)}</script></head></html>'


def test_json_ld_malformed_entity_costs_only_itself():
    html = _json_ld_page(
        {"name": "Depa en Lince", "url": "/inmueble/555", "offers": {"price": "1800"}},
        {"name": "Depa en Jesus Maria", "url": "/inmueble/556", "offers": "S/ 1,500"},
        {"name": "Casa rota", "url": "/inmueble/557", "contentLocation": {"name": {"x": 1}}},
    )
    result = build_listing_extractor().extract(html, SEARCH_URL)

    assert result.metadata.errors is None
    assert result.metadata.strategy_used == "Urbania"
    assert [l.listing_id for l in result.entities] == ["555", "556"]
    assert result.entities[1].price.amount == pytest.approx(1500)
    assert result.entities[1].price.currency == "PEN"


class BrokenLocationUrbania(UrbaniaStrategy):
    def _card_location(self, text):
        if "Roto" in text:
            raise ValueError("unreadable location")
        return super()._card_location(text)


def test_card_failure_costs_only_that_card():
    html = """
    <div class="listing-card" data-property-id="1">
      <h2><a href="/inmueble/1">Depa uno</a></h2><div class="location">Roto</div>
    </div>
    <div class="listing-card" data-property-id="2">
      <h2><a href="/inmueble/2">Depa dos</a></h2><div class="location">Surco, Lima</div>
    </div>
    """
    listings = BrokenLocationUrbania().extract(html, SEARCH_URL)
    assert [l.listing_id for l in listings] == ["2"]
    assert listings[0].location.district == "Surco"
