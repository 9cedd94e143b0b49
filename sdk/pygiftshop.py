# sdk/pygiftshop.py
import mimetypes
import os
from typing import Any, Dict, List, Optional

import httpx
import requests


class GiftShopClient:
    def __init__(self, base_url: str = "http://localhost:8085", access_token: Optional[str] = None, timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.access_token = None
        if access_token:
            self._use_token(access_token)

    def _use_token(self, token: Optional[str]):
        self.access_token = token
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})
        else:
            self.session.headers.pop("Authorization", None)

    def _get(self, path: str, **params):
        r = self.session.get(f"{self.base_url}{path}", params={k: v for k, v in params.items() if v is not None},
                             timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        r = self.session.request(method, f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    # -----------------------
    # Auth
    # -----------------------
    def login(self, email: str, password: str):
        body = self._send("POST", "/login", {"email": email, "password": password})
        self._use_token(body["access_token"])
        return body

    def signup(self, email: str, password: str, full_name: str = "", phone: Optional[str] = None):
        body = self._send("POST", "/signup", {"email": email, "password": password,
                                              "full_name": full_name, "phone": phone})
        # no token until the email is confirmed
        if not body.get("needs_email_confirmation"):
            self._use_token(body.get("access_token"))
        return body

    def logout(self):
        body = self._send("POST", "/logout")
        self._use_token(None)
        return body

    def me(self):
        return self._get("/me")

    # -----------------------
    # Storefront
    # -----------------------
    def home(self):
        return self._get("/")

    def list_products(self, category: Optional[str] = None, tag: Optional[str] = None):
        return self._get("/products", category=category, tag=tag)

    async def list_products_async(self, category: Optional[str] = None, tag: Optional[str] = None):
        params = {k: v for k, v in {"category": category, "tag": tag}.items() if v is not None}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.get(f"{self.base_url}/products", params=params)
            r.raise_for_status()
            return r.json()

    def get_product(self, product_id: str):
        return self._get(f"/products/{product_id}")

    def order_link(self, product_id: Optional[str] = None) -> str:
        if product_id:
            return self._get(f"/products/{product_id}/order-link")["url"]
        return self._get("/order-link")["url"]

    def list_categories(self) -> List[Dict[str, Any]]:
        return self._get("/categories")

    def list_tags(self) -> List[str]:
        return self._get("/tags")

    def contact(self):
        return self._get("/contact")

    def gallery(self):
        return self._get("/gallery")

    # -----------------------
    # Admin
    # -----------------------
    def dashboard(self):
        return self._get("/admin")

    def admin_list_products(self, status: Optional[str] = None, category: Optional[str] = None,
                            tag: Optional[str] = None):
        return self._get("/admin/products", status=status, category=category, tag=tag)

    def admin_get_product(self, product_id: str):
        return self._get(f"/admin/products/{product_id}")

    def create_product(self, name: str, description: str, price: float, images: List[str],
                       offer_price: Optional[float] = None, category_id: Optional[str] = None,
                       tags: Optional[List[str]] = None):
        return self._send("POST", "/admin/products", {
            "name": name, "description": description, "price": price, "offer_price": offer_price,
            "category_id": category_id, "tags": tags or [], "images": images,
        })

    def update_product(self, product_id: str, **changes):
        return self._send("PUT", f"/admin/products/{product_id}", changes)

    def approve_product(self, product_id: str):
        return self._send("POST", f"/admin/products/{product_id}/approve")

    def set_stock(self, product_id: str, in_stock: bool):
        return self._send("POST", f"/admin/products/{product_id}/stock", {"in_stock": in_stock})

    def delete_product(self, product_id: str):
        return self._send("DELETE", f"/admin/products/{product_id}")

    def upload_image(self, file_path: str, product_id: Optional[str] = None) -> str:
        content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
        with open(file_path, "rb") as fh:
            files = {"file": (os.path.basename(file_path), fh, content_type)}
            data = {"product_id": product_id} if product_id else {}
            r = self.session.post(f"{self.base_url}/admin/uploads", files=files, data=data, timeout=self.timeout)
        r.raise_for_status()
        return r.json()["url"]

    def remove_image(self, url: str):
        return self._send("DELETE", "/admin/uploads", {"url": url})

    def create_category(self, name: str, slug: str, description: Optional[str] = None, display_order: int = 0):
        return self._send("POST", "/admin/categories", {
            "name": name, "slug": slug, "description": description, "display_order": display_order,
        })

    def delete_category(self, category_id: str):
        return self._send("DELETE", f"/admin/categories/{category_id}")


if __name__ == "__main__":
    import argparse

    from rich import print

    parser = argparse.ArgumentParser(description="giftshop SDK")
    parser.add_argument("--base-url", default=os.environ.get("GIFTSHOP_URL", "http://127.0.0.1:8085"))
    parser.add_argument("--token", default=os.environ.get("GIFTSHOP_TOKEN"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---------------------------
    # Storefront commands
    # ---------------------------
    lp = subparsers.add_parser("list-products", help="List live products")
    lp.add_argument("--category", help="Category id, or 'all'")
    lp.add_argument("--tag", help="Tag the product must carry, or 'all'")

    gp = subparsers.add_parser("get-product", help="Get a live product by its ID")
    gp.add_argument("--product-id", required=True)

    ol = subparsers.add_parser("order-link", help="WhatsApp order link")
    ol.add_argument("--product-id", help="Product to ask about")

    subparsers.add_parser("categories", help="List categories")

    # ---------------------------
    # Admin commands
    # ---------------------------
    lg = subparsers.add_parser("login", help="Sign in and print the access token")
    lg.add_argument("--email", required=True)
    lg.add_argument("--password", required=True)

    al = subparsers.add_parser("admin-products", help="List products in any status")
    al.add_argument("--status", default="all", help="all, draft, live or out_of_stock")

    ap = subparsers.add_parser("approve", help="Approve a draft product")
    ap.add_argument("--product-id", required=True)

    st = subparsers.add_parser("stock", help="Mark a product in or out of stock")
    st.add_argument("--product-id", required=True)
    st.add_argument("--out", action="store_true", help="Mark out of stock")

    dp = subparsers.add_parser("delete-product", help="Delete a product")
    dp.add_argument("--product-id", required=True)

    args = parser.parse_args()
    c = GiftShopClient(base_url=args.base_url, access_token=args.token)

    if args.command == "list-products":
        print(c.list_products(args.category, args.tag))
    elif args.command == "get-product":
        print(c.get_product(args.product_id))
    elif args.command == "order-link":
        print(c.order_link(args.product_id))
    elif args.command == "categories":
        print(c.list_categories())
    elif args.command == "login":
        print(c.login(args.email, args.password)["access_token"])
    elif args.command == "admin-products":
        print(c.admin_list_products(args.status))
    elif args.command == "approve":
        print(c.approve_product(args.product_id))
    elif args.command == "stock":
        print(c.set_stock(args.product_id, not args.out))
    elif args.command == "delete-product":
        print(c.delete_product(args.product_id))
