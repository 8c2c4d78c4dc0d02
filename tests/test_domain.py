import pytest

from extracto.domain import REAL_ESTATE_DOMAINS, UNKNOWN_DOMAIN, domain_of, is_real_estate_domain


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.falabella.com.pe/falabella-pe/category/cat40052", "falabella"),
        ("https://www.ripley.com.pe/tecnologia", "ripley"),
        ("https://shop.example.com/item/1", "example"),
        ("https://www.bbc.co.uk/news", "bbc"),
        ("https://amazon.com/dp/B000", "amazon"),
        ("https://www.amazon.com/dp/B000", "amazon"),
        ("https://urbania.pe/buscar/alquiler-de-departamentos", "urbania"),
        ("http://localhost:8000/page", "localhost"),
        ("HTTPS://WWW.Falabella.COM.PE/x", "falabella"),
    ],
)
def test_domain_of(url, expected):
    assert domain_of(url) == expected


@pytest.mark.parametrize("url", ["not a url", "", "mailto:someone", "/relative/path"])
def test_domain_of_unparseable(url):
    assert domain_of(url) == UNKNOWN_DOMAIN


def test_is_real_estate_domain():
    assert is_real_estate_domain("https://urbania.pe/inmueble/123")
    assert is_real_estate_domain("https://www.adondevivir.com/departamentos")
    assert is_real_estate_domain("https://www.properati.com.pe/s/lima")
    assert not is_real_estate_domain("https://www.falabella.com.pe/falabella-pe")
    assert not is_real_estate_domain("garbage")


def test_real_estate_slugs_follow_site_hosts():
    assert REAL_ESTATE_DOMAINS == {"urbania", "adondevivir", "properati", "nexoinmobiliario"}
    assert is_real_estate_domain("https://www.properati.com.pe/s/lima")
    assert not is_real_estate_domain("https://www.falabella.com.pe")
