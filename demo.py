#!/usr/bin/env python
# Walks a running server through the product lifecycle. Start it with
#   GIFTSHOP_ADMIN_EMAIL=admin@example.com GIFTSHOP_ADMIN_PASSWORD=secret123 uvicorn giftshop.main:app --port 8085
import asyncio
import os

from sdk.pygiftshop import GiftShopClient


async def browse_tags(c: GiftShopClient, tags):
    # one storefront request per tag, all in flight together
    results = await asyncio.gather(*(c.list_products_async(tag=t) for t in tags))
    return {t: [p["name"] for p in r["items"]] for t, r in zip(tags, results)}


def main():
    c = GiftShopClient(base_url=os.environ.get("GIFTSHOP_URL", "http://127.0.0.1:8085"))

    # -----------------------------
    # Sign in as the seeded admin
    # -----------------------------
    print("Signing in...")
    c.login(os.environ.get("GIFTSHOP_ADMIN_EMAIL", "admin@example.com"),
            os.environ.get("GIFTSHOP_ADMIN_PASSWORD", "secret123"))
    print(c.me())

    # -----------------------------
    # Categories and products
    # -----------------------------
    print("\nCreating a category...")
    bears = c.create_category("Teddy Bears", "teddy-bears", "Soft toys of every size", display_order=1)
    print(bears)

    print("\nAdding products (saved as draft)...")
    big = c.create_product(
        "Teddy Bear L", "Large pink teddy bear", 1000, offer_price=800, category_id=bears["id"],
        tags=["New Arrival", "Perfect for Birthday"],
        images=["https://images.pexels.com/photos/265937/pexels-photo-265937.jpeg"],
    )
    small = c.create_product(
        "Teddy Bear S", "Pocket sized bear", 350, category_id=bears["id"], tags=["Kids Favorite"],
        images=["https://images.pexels.com/photos/2072454/pexels-photo-2072454.jpeg"],
    )
    print(c.dashboard())

    # -----------------------------
    # Approval
    # -----------------------------
    print("\nApproving the large bear...")
    print(c.approve_product(big["id"]))

    print("\nStorefront sees only live products:")
    print(c.list_products(category="all", tag="New Arrival"))

    print("\nBrowsing tags concurrently:")
    print(asyncio.run(browse_tags(c, ["New Arrival", "Kids Favorite", "Perfect for Birthday"])))

    print("\nWhatsApp order link:")
    print(c.order_link(big["id"]))

    # -----------------------------
    # Restock toggle and cleanup
    # -----------------------------
    print("\nMarking the large bear out of stock...")
    print(c.set_stock(big["id"], False))
    print(c.admin_list_products(status="out_of_stock"))

    print("\nDeleting the small bear...")
    print(c.delete_product(small["id"]))
    print(c.dashboard())


if __name__ == "__main__":
    main()
