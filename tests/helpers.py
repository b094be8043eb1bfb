MAPPING = {
    "sku": "id",
    "title": "name",
    "description": "details.text",
    "price": "pricing.amount",
    "image_url": "images[0].src",
    "category": "category",
}


def product(sku: str, name: str = "Widget", text: str = "A useful widget", amount="9.99", **extra) -> dict:
    record = {
        "id": sku,
        "name": name,
        "details": {"text": text},
        "pricing": {"amount": amount},
        "images": [{"src": f"https://cdn.example.com/{sku}.jpg"}],
        "category": "tools",
    }
    record.update(extra)
    return record
