import os
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import bcrypt
from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    get_jwt_identity,
    jwt_required,
)
from flask_pymongo import PyMongo
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from werkzeug.middleware.proxy_fix import ProxyFix

import cart as carts
import catalog
import csv_import
import flows
import mailer
import theme
from ai_client import GenerationError, GenerativeClient, GenerativeConfig
from media import MediaError, MediaStorage
from schemas import (
    CartItemInput,
    CheckoutForm,
    CollectionCreate,
    CollectionUpdate,
    CustomerBase,
    CustomerUpdate,
    DesignViewState,
    ProductBase,
    ProductCreate,
    ProductUpdate,
    QuantityUpdate,
    QuoteRequest,
    ThemeSettingsUpdate,
)
from shipping import warn_if_unconfigured

load_dotenv()

_configured_admin_email = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@commercecraft.store") or "admin@commercecraft.store"
DEFAULT_ADMIN_EMAIL = _configured_admin_email.strip().lower()
DEFAULT_ADMIN_NAME = (os.getenv("DEFAULT_ADMIN_NAME", "Store Admin") or "Store Admin").strip()


def create_app(test_config: Optional[Dict] = None, database=None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # --- Configuration ---
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        hours=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES", "8"))
    )
    app.config["MONGO_URI"] = os.getenv("MONGO_URI", "mongodb://localhost:27017/commercecraft")
    max_upload_mb = int(os.getenv("MAX_UPLOAD_SIZE_MB", "16"))
    app.config["MAX_CONTENT_LENGTH"] = max_upload_mb * 1024 * 1024
    app.config["UPLOAD_FOLDER"] = os.getenv(
        "UPLOAD_FOLDER", os.path.join(app.root_path, "uploads")
    )
    app.config["PUBLIC_BASE_URL"] = os.getenv("PUBLIC_BASE_URL", "").strip()
    app.config["STORE_NAME"] = os.getenv("STORE_NAME", "CommerceCraft")
    app.config["STORE_CURRENCY"] = os.getenv("STORE_CURRENCY", "USD").upper()
    app.config["STORE_CONTACT_EMAIL"] = os.getenv("STORE_CONTACT_EMAIL", "").strip()
    app.config["ORDER_SENDER_EMAIL"] = os.getenv("ORDER_SENDER_EMAIL", "orders@commercecraft.store")
    app.config["RESEND_API_KEY"] = (os.getenv("RESEND_API_KEY") or "").strip()
    app.config["OPENAI_API_KEY"] = (os.getenv("OPENAI_API_KEY") or "").strip()
    app.config["GENAI_TEXT_MODEL"] = os.getenv("GENAI_TEXT_MODEL", "gpt-4o-mini")
    app.config["GENAI_IMAGE_MODEL"] = os.getenv("GENAI_IMAGE_MODEL", "gpt-image-1")
    app.config["GENAI_CLIENT"] = None
    app.config["EASYPOST_API_KEY"] = (os.getenv("EASYPOST_API_KEY") or "").strip()
    app.config["DEFAULT_ADMIN_PASSWORD"] = os.getenv("DEFAULT_ADMIN_PASSWORD", "")
    app.config["RECOMMENDATION_LIMIT"] = 6

    if test_config:
        app.config.update(test_config)

    # Honor proxy headers so generated upload URLs keep the public origin.
    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # --- Initialize extensions ---
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:9002",
        os.getenv("FRONTEND_URL", "").strip(),
        os.getenv("PUBLIC_FRONTEND_URL", "").strip(),
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    allowed_origins = [origin for origin in allowed_origins if origin]

    CORS(app, supports_credentials=True, origins=allowed_origins or "*")

    JWTManager(app)
    if database is None:
        database = PyMongo(app).db
    db = database

    storage = MediaStorage(app.config["UPLOAD_FOLDER"], app.config["PUBLIC_BASE_URL"])
    warn_if_unconfigured(app.config["EASYPOST_API_KEY"])

    audit_logs_collection = db.audit_logs
    try:
        audit_logs_collection.create_index([("created_at", -1)])
        db[catalog.PRODUCTS].create_index("handle")
        db[catalog.PRODUCTS].create_index("category")
        db[carts.CARTS].create_index("token", unique=True)
        db.users.create_index("email", unique=True)
    except PyMongoError as exc:
        app.logger.warning("Unable to ensure indexes: %s", exc)

    # --- Helpers ---

    ALLOWED_USER_ROLES = {"admin", "staff"}
    email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

    def normalize_email(value: Optional[str]) -> str:
        return str(value or "").strip().lower()

    def normalize_role(value: Optional[str]) -> str:
        normalized = str(value or "").strip().lower()
        return normalized if normalized in ALLOWED_USER_ROLES else "staff"

    def get_user_role(user_document) -> str:
        if not user_document:
            return ""
        if normalize_email(user_document.get("email")) == DEFAULT_ADMIN_EMAIL:
            return "admin"
        return normalize_role(user_document.get("role"))

    def require_role(*roles: str):
        allowed = {normalize_role(role) for role in roles if role}

        current_email = normalize_email(get_jwt_identity())
        current_user = db.users.find_one({"email": current_email})
        if not current_user:
            return (
                None,
                (jsonify({"message": "Your account no longer has admin access."}), 403),
            )
        user_role = get_user_role(current_user)

        if user_role == "admin" or not allowed or user_role in allowed:
            return current_user, None

        return (
            None,
            (
                jsonify({"message": "You need additional permissions to perform this action."}),
                403,
            ),
        )

    def require_staff_user():
        return require_role("staff", "admin")

    def require_admin_user():
        return require_role("admin")

    def ensure_default_admin():
        password = str(app.config.get("DEFAULT_ADMIN_PASSWORD") or "")
        if not password:
            return
        try:
            if db.users.find_one({"email": DEFAULT_ADMIN_EMAIL}):
                return
            db.users.insert_one(
                {
                    "email": DEFAULT_ADMIN_EMAIL,
                    "name": DEFAULT_ADMIN_NAME,
                    "role": "admin",
                    "password": bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()),
                    "created_at": datetime.utcnow(),
                }
            )
            app.logger.info("Created default admin account %s", DEFAULT_ADMIN_EMAIL)
        except PyMongoError as exc:
            app.logger.warning("Unable to ensure default admin account: %s", exc)

    def serialize_admin_user(user_document) -> Dict[str, object]:
        if not user_document:
            return {}
        last_login_at = user_document.get("last_login_at")
        return {
            "id": str(user_document.get("_id")),
            "name": user_document.get("name", "") or "",
            "email": user_document.get("email", "") or "",
            "role": get_user_role(user_document),
            "last_login_at": last_login_at.isoformat()
            if isinstance(last_login_at, datetime)
            else None,
        }

    def sanitize_metadata(metadata: Optional[Dict]) -> Dict[str, str]:
        if not isinstance(metadata, dict):
            return {}
        sanitized: Dict[str, str] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            sanitized[str(key)] = str(value)
        return sanitized

    def record_audit_log(actor_email: Optional[str], action: str, metadata: Optional[Dict] = None):
        if not action:
            return
        try:
            audit_logs_collection.insert_one(
                {
                    "user_email": normalize_email(actor_email) or None,
                    "action": action,
                    "metadata": sanitize_metadata(metadata),
                    "created_at": datetime.utcnow(),
                }
            )
        except PyMongoError as exc:
            app.logger.warning("Unable to record audit log: %s", exc)

    def serialize_audit_log(document):
        if not document:
            return {}
        created_at = document.get("created_at")
        metadata = document.get("metadata")
        return {
            "id": str(document.get("_id")),
            "user_email": document.get("user_email") or "",
            "action": document.get("action") or "",
            "metadata": metadata if isinstance(metadata, dict) else {},
            "created_at": created_at.isoformat() + "Z"
            if isinstance(created_at, datetime)
            else None,
        }

    def current_actor() -> str:
        return normalize_email(get_jwt_identity())

    def validation_error_response(exc: ValidationError):
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        details = []
        for error in errors:
            location = ".".join(str(part) for part in error.get("loc", ()))
            details.append({"field": location, "message": error.get("msg", "")})
        first = details[0] if details else {"field": "", "message": "Invalid request."}
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        return jsonify({"message": message, "errors": details}), 400

    def parse_payload(model, payload: Optional[Dict] = None):
        if payload is None:
            payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return None, (jsonify({"message": "A JSON object body is required."}), 400)
        try:
            return model.model_validate(payload), None
        except ValidationError as exc:
            return None, validation_error_response(exc)

    def get_genai_client():
        client = app.config.get("GENAI_CLIENT") or app.extensions.get("genai_client")
        if client is None:
            try:
                client = GenerativeClient(
                    GenerativeConfig(
                        api_key=app.config.get("OPENAI_API_KEY") or None,
                        text_model=app.config["GENAI_TEXT_MODEL"],
                        image_model=app.config["GENAI_IMAGE_MODEL"],
                    )
                )
            except GenerationError as exc:
                app.logger.error("Generative client unavailable: %s", exc)
                return None, (jsonify({"message": str(exc)}), 503)
            app.extensions["genai_client"] = client
        return client, None

    def run_flow(flow, *args):
        try:
            return flow(*args), None
        except ValidationError as exc:
            return None, validation_error_response(exc)
        except flows.FlowError as exc:
            app.logger.error("Flow %s failed: %s", getattr(flow, "__name__", flow), exc)
            return None, (jsonify({"message": str(exc)}), 502)

    def read_csv_payload() -> Optional[str]:
        upload = request.files.get("file")
        if upload and upload.filename:
            return upload.read().decode("utf-8-sig", errors="replace")
        payload = request.get_json(silent=True) or {}
        value = payload.get("csv") or payload.get("csvData")
        return str(value) if value else None

    def product_or_404(product_id: str, active_only: bool = False):
        product = catalog.get_product_by_id(db, product_id)
        if not product or (active_only and product.get("status") != "active"):
            return None, (jsonify({"message": "Product not found."}), 404)
        return product, None

    def handle_in_use(handle: str, exclude_id: Optional[str] = None) -> bool:
        existing = catalog.get_product_by_slug(db, handle)
        return bool(existing and existing["id"] != exclude_id)

    ensure_default_admin()

    # --- ROUTES ---

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    @app.route("/uploads/<path:filename>")
    def serve_uploaded_file(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    # Storefront catalog
    @app.route("/api/products", methods=["GET"])
    def list_products():
        category = (request.args.get("category") or "").strip()
        if category:
            products = catalog.get_products_by_category(db, category)
        else:
            products = catalog.get_active_products(db)
        return jsonify({"products": products})

    @app.route("/api/products/<product_id>", methods=["GET"])
    def get_product(product_id: str):
        product, load_error = product_or_404(product_id, active_only=True)
        if load_error:
            return load_error
        return jsonify({"product": product})

    @app.route("/api/products/handle/<slug>", methods=["GET"])
    def get_product_by_handle(slug: str):
        product = catalog.get_product_by_slug(db, slug)
        if not product or product.get("status") != "active":
            return jsonify({"message": "Product not found."}), 404
        return jsonify({"product": product})

    @app.route("/api/products/<product_id>/recommendations", methods=["GET"])
    def get_recommendations(product_id: str):
        history = [
            entry.strip()
            for entry in (request.args.get("history") or "").split(",")
            if entry.strip()
        ][:20]
        if not history:
            return jsonify({"products": []})

        client, client_error = get_genai_client()
        if client_error:
            return jsonify({"products": []})

        active_products = catalog.get_active_products(db)
        try:
            result = flows.product_recommendations(
                client, {"viewingHistory": history}, active_products
            )
        except (flows.FlowError, ValidationError) as exc:
            app.logger.warning("Failed to fetch recommendations: %s", exc)
            return jsonify({"products": []})

        recommended_ids = set(result.get("recommendedProducts") or [])
        recommendations = [
            product
            for product in active_products
            if product["id"] in recommended_ids and product["id"] != product_id
        ]
        return jsonify({"products": recommendations[: app.config["RECOMMENDATION_LIMIT"]]})

    @app.route("/api/collections", methods=["GET"])
    def list_collections():
        return jsonify({"collections": catalog.get_collections(db)})

    @app.route("/api/collections/<collection_id>", methods=["GET"])
    def get_collection(collection_id: str):
        collection = catalog.get_collection_by_id(db, collection_id)
        if not collection:
            return jsonify({"message": "Collection not found."}), 404
        products = catalog.get_products_by_category(db, collection.get("name", ""))
        return jsonify({"collection": collection, "products": products})

    # Theme and pages
    @app.route("/api/settings/theme", methods=["GET"])
    def get_theme():
        settings = theme.get_theme_settings(db)
        return jsonify(
            {"settings": settings, "palette": theme.get_palette(settings.get("palette"))}
        )

    @app.route("/api/palettes", methods=["GET"])
    def list_palettes():
        return jsonify({"palettes": theme.PALETTES, "fonts": theme.FONTS})

    @app.route("/api/pages/<path:slug>", methods=["GET"])
    def get_page(slug: str):
        page = theme.find_page(theme.get_theme_settings(db), slug)
        if not page:
            return jsonify({"message": "Page not found."}), 404
        return jsonify({"page": page})

    # Cart
    @app.route("/api/cart", methods=["POST"])
    def create_cart():
        token = carts.new_cart_token()
        return jsonify(carts.clear_cart(db, token)), 201

    @app.route("/api/cart/<token>", methods=["GET"])
    def get_cart(token: str):
        return jsonify(carts.get_cart(db, token))

    @app.route("/api/cart/<token>", methods=["DELETE"])
    def clear_cart(token: str):
        return jsonify(carts.clear_cart(db, token))

    @app.route("/api/cart/<token>/items", methods=["POST"])
    def add_cart_item(token: str):
        item, validation_error = parse_payload(CartItemInput)
        if validation_error:
            return validation_error

        product, load_error = product_or_404(item.productId, active_only=True)
        if load_error:
            return load_error

        if item.variantId and product.get("inventory"):
            inventory_ids = {entry.get("id") for entry in product["inventory"]}
            if item.variantId not in inventory_ids:
                return jsonify({"message": "That variant is not available."}), 400

        cart_state = carts.add_to_cart(
            db, token, product, item.variantId, item.variantLabel, item.quantity
        )
        label = f" ({item.variantLabel})" if item.variantLabel else ""
        return jsonify(
            {"message": f"{product.get('name', 'Item')}{label} has been added.", **cart_state}
        )

    @app.route("/api/cart/<token>/items/<item_id>", methods=["PATCH"])
    def update_cart_item(token: str, item_id: str):
        update, validation_error = parse_payload(QuantityUpdate)
        if validation_error:
            return validation_error
        return jsonify(carts.update_quantity(db, token, item_id, update.quantity))

    @app.route("/api/cart/<token>/items/<item_id>", methods=["DELETE"])
    def remove_cart_item(token: str, item_id: str):
        return jsonify(carts.remove_from_cart(db, token, item_id))

    @app.route("/api/checkout/<token>", methods=["POST"])
    def checkout(token: str):
        form, validation_error = parse_payload(CheckoutForm)
        if validation_error:
            return validation_error

        try:
            order_document = carts.place_order(
                db, token, form.model_dump(), currency=app.config["STORE_CURRENCY"]
            )
        except carts.EmptyCartError as exc:
            return jsonify({"message": str(exc)}), 400

        email_sent, email_error = mailer.send_order_confirmation(order_document)
        return (
            jsonify(
                {
                    "message": "Your order has been placed successfully.",
                    "order": carts.serialize_order(order_document),
                    "email_sent": email_sent,
                    "email_error": email_error,
                }
            ),
            201,
        )

    @app.route("/api/quotes", methods=["POST"])
    def request_quote():
        quote, validation_error = parse_payload(QuoteRequest)
        if validation_error:
            return validation_error

        quote_document = {**quote.model_dump(), "created_at": datetime.utcnow()}
        db.quote_requests.insert_one(quote_document)
        email_sent, _ = mailer.send_quote_request(quote_document)
        return (
            jsonify(
                {
                    "message": "Thank you! We've received your request and will get back to you shortly.",
                    "email_sent": email_sent,
                }
            ),
            201,
        )

    # Product designer
    @app.route("/api/designs/<design_id>", methods=["GET"])
    def get_design(design_id: str):
        document = db.designs.find_one({"_id": design_id})
        return jsonify({"id": design_id, "views": (document or {}).get("views", {})})

    @app.route("/api/designs/<design_id>", methods=["PUT"])
    def save_design(design_id: str):
        payload = request.get_json(silent=True) or {}
        raw_views = payload.get("views")
        if not isinstance(raw_views, dict):
            return jsonify({"message": "Designs must map image URLs to view states."}), 400

        views: Dict[str, Dict] = {}
        for image_url, raw_view in raw_views.items():
            try:
                views[str(image_url)] = DesignViewState.model_validate(raw_view).model_dump()
            except ValidationError as exc:
                return validation_error_response(exc)

        db.designs.update_one(
            {"_id": design_id},
            {"$set": {"views": views, "updated_at": datetime.utcnow()}},
            upsert=True,
        )
        return jsonify({"id": design_id, "views": views})

    # --- Admin ---

    @app.route("/api/admin/login", methods=["POST"])
    def admin_login():
        payload = request.get_json(silent=True) or {}
        email = normalize_email(payload.get("email"))
        password = str(payload.get("password", ""))

        if not email or not password:
            return jsonify({"message": "Email and password are required."}), 400
        if not email_regex.match(email):
            return jsonify({"message": "Please enter a valid email address."}), 400

        user = db.users.find_one({"email": email})
        if not user or not bcrypt.checkpw(password.encode("utf-8"), user["password"]):
            return jsonify({"message": "Invalid credentials"}), 401

        db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login_at": datetime.utcnow()}})
        user = db.users.find_one({"_id": user["_id"]})

        record_audit_log(
            email, "Signed in", {"ip": request.headers.get("X-Forwarded-For", request.remote_addr)}
        )
        return jsonify(
            {"access_token": create_access_token(identity=email), "user": serialize_admin_user(user)}
        )

    @app.route("/api/admin/me", methods=["GET"])
    @jwt_required()
    def admin_me():
        current_user, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        return jsonify({"user": serialize_admin_user(current_user)})

    # Admin products
    @app.route("/api/admin/products", methods=["GET"])
    @jwt_required()
    def admin_list_products():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        products = sorted(
            catalog.get_products(db), key=lambda product: str(product.get("name", "")).lower()
        )
        return jsonify({"products": products})

    @app.route("/api/admin/products/<product_id>", methods=["GET"])
    @jwt_required()
    def admin_get_product(product_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        product, load_error = product_or_404(product_id)
        if load_error:
            return load_error
        return jsonify({"product": product})

    @app.route("/api/admin/products", methods=["POST"])
    @jwt_required()
    def admin_create_product():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        product, validation_error = parse_payload(ProductCreate)
        if validation_error:
            return validation_error

        product_data = product.model_dump()
        product_data["handle"] = catalog.slugify(product_data.get("handle") or product.name)
        if not product_data["handle"]:
            return jsonify({"message": "handle: could not derive a URL handle from the name."}), 400
        if handle_in_use(product_data["handle"]):
            return jsonify({"message": "A product with this handle already exists."}), 409
        if product_data["variants"] and not product_data["inventory"]:
            product_data["inventory"] = catalog.build_inventory(
                product_data["variants"], product.price
            )

        product_id = catalog.add_product(db, product_data)
        record_audit_log(
            current_actor(), "Created product", {"product_id": product_id, "product_name": product.name}
        )
        return (
            jsonify(
                {
                    "message": f'The product "{product.name}" has been successfully created.',
                    "product": catalog.get_product_by_id(db, product_id),
                }
            ),
            201,
        )

    @app.route("/api/admin/products/<product_id>", methods=["PUT", "PATCH"])
    @jwt_required()
    def admin_update_product(product_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        existing, load_error = product_or_404(product_id)
        if load_error:
            return load_error

        update, validation_error = parse_payload(ProductUpdate)
        if validation_error:
            return validation_error

        update_data = update.model_dump(exclude_unset=True)
        if "handle" in update_data:
            update_data["handle"] = catalog.slugify(update_data["handle"] or existing.get("name"))
            if handle_in_use(update_data["handle"], exclude_id=product_id):
                return jsonify({"message": "A product with this handle already exists."}), 409

        try:
            catalog.update_product(db, product_id, update_data)
        except catalog.NotFoundError:
            return jsonify({"message": "Product not found."}), 404

        record_audit_log(
            current_actor(),
            "Updated product",
            {"product_id": product_id, "fields": ",".join(sorted(update_data))},
        )
        return jsonify(
            {"message": "Product updated.", "product": catalog.get_product_by_id(db, product_id)}
        )

    @app.route("/api/admin/products/<product_id>", methods=["DELETE"])
    @jwt_required()
    def admin_delete_product(product_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        product, load_error = product_or_404(product_id)
        if load_error:
            return load_error

        catalog.delete_product(db, product_id)
        for image_url in product.get("images") or []:
            storage.delete_image(image_url)

        record_audit_log(
            current_actor(),
            "Deleted product",
            {"product_id": product_id, "product_name": product.get("name", "")},
        )
        return jsonify({"message": "Product removed successfully."})

    @app.route("/api/admin/products/inventory", methods=["POST"])
    @jwt_required()
    def admin_build_inventory():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        payload = request.get_json(silent=True) or {}
        variants = payload.get("variants")
        if not isinstance(variants, list):
            return jsonify({"message": "variants must be a list."}), 400
        try:
            base_price = float(payload.get("price", 0) or 0)
        except (TypeError, ValueError):
            return jsonify({"message": "Price must be a valid number."}), 400
        existing = payload.get("inventory") if isinstance(payload.get("inventory"), list) else []
        return jsonify({"inventory": catalog.build_inventory(variants, base_price, existing)})

    def import_validated_products(raw_products: List[Dict]):
        valid_products: List[Dict] = []
        skipped = 0
        for raw_product in raw_products:
            try:
                valid_products.append(ProductBase.model_validate(raw_product).model_dump())
            except ValidationError as exc:
                skipped += 1
                app.logger.warning("Skipping invalid imported product: %s", exc.errors()[:3])
        inserted_ids = catalog.import_products(db, valid_products)
        return inserted_ids, skipped

    @app.route("/api/admin/products/import", methods=["POST"])
    @jwt_required()
    def admin_import_products():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        csv_text = read_csv_payload()
        if not csv_text:
            return jsonify({"message": "Please select a CSV file to import."}), 400

        try:
            raw_products = csv_import.parse_products_csv(csv_text)
        except csv_import.CsvImportError as exc:
            return jsonify({"message": str(exc)}), 400

        inserted_ids, skipped = import_validated_products(raw_products)
        if not inserted_ids:
            return (
                jsonify(
                    {"message": "No valid products found. The CSV file might be empty or formatted incorrectly."}
                ),
                400,
            )

        record_audit_log(current_actor(), "Imported products", {"count": len(inserted_ids)})
        return (
            jsonify(
                {
                    "message": f"{len(inserted_ids)} products have been imported.",
                    "imported": len(inserted_ids),
                    "skipped": skipped,
                    "ids": inserted_ids,
                }
            ),
            201,
        )

    @app.route("/api/admin/products/import/intelligent", methods=["POST"])
    @jwt_required()
    def admin_intelligent_import():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        csv_text = read_csv_payload()
        if not csv_text:
            return jsonify({"message": "Please select a CSV file to import."}), 400

        client, client_error = get_genai_client()
        if client_error:
            return client_error

        result, flow_error = run_flow(
            flows.intelligent_product_import,
            client,
            {"csvData": csv_text},
            app.config["STORE_NAME"],
        )
        if flow_error:
            return flow_error

        commit = bool((request.get_json(silent=True) or {}).get("commit")) or (
            request.form.get("commit", "").lower() in ("1", "true", "yes")
        )
        if not commit:
            return jsonify({"products": result["products"], "imported": 0})

        inserted_ids, skipped = import_validated_products(result["products"])
        record_audit_log(
            current_actor(), "Imported products with AI mapping", {"count": len(inserted_ids)}
        )
        return (
            jsonify(
                {
                    "message": f"{len(inserted_ids)} products have been imported.",
                    "products": result["products"],
                    "imported": len(inserted_ids),
                    "skipped": skipped,
                    "ids": inserted_ids,
                }
            ),
            201,
        )

    @app.route("/api/admin/import-templates/<kind>", methods=["GET"])
    @jwt_required()
    def admin_import_template(kind: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        template = csv_import.TEMPLATES.get(kind)
        if template is None:
            return jsonify({"message": "Unknown template."}), 404
        return Response(
            template,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={kind}_template.csv"},
        )

    # Admin collections
    @app.route("/api/admin/collections", methods=["POST"])
    @jwt_required()
    def admin_create_collection():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        collection, validation_error = parse_payload(CollectionCreate)
        if validation_error:
            return validation_error

        collection_id = catalog.add_collection(db, collection.model_dump(exclude_none=True))
        record_audit_log(
            current_actor(), "Created collection", {"collection_id": collection_id, "name": collection.name}
        )
        return (
            jsonify(
                {
                    "message": "Collection created successfully.",
                    "collection": catalog.get_collection_by_id(db, collection_id),
                }
            ),
            201,
        )

    @app.route("/api/admin/collections/<collection_id>", methods=["PUT", "PATCH"])
    @jwt_required()
    def admin_update_collection(collection_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        update, validation_error = parse_payload(CollectionUpdate)
        if validation_error:
            return validation_error

        try:
            moved = catalog.update_collection(
                db, collection_id, update.model_dump(exclude_unset=True)
            )
        except catalog.NotFoundError:
            return jsonify({"message": "Collection not found."}), 404

        record_audit_log(
            current_actor(),
            "Updated collection",
            {"collection_id": collection_id, "products_updated": moved},
        )
        return jsonify(
            {
                "message": "Collection updated.",
                "collection": catalog.get_collection_by_id(db, collection_id),
                "products_updated": moved,
            }
        )

    @app.route("/api/admin/collections/<collection_id>", methods=["DELETE"])
    @jwt_required()
    def admin_delete_collection(collection_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        collection = catalog.get_collection_by_id(db, collection_id)
        if not collection:
            return jsonify({"message": "Collection not found."}), 404

        catalog.delete_collection(db, collection_id)
        record_audit_log(
            current_actor(),
            "Deleted collection",
            {"collection_id": collection_id, "name": collection.get("name", "")},
        )
        return jsonify(
            {"message": f'"{collection.get("name", "Collection")}" has been removed from the catalog.'}
        )

    # Admin customers
    @app.route("/api/admin/customers", methods=["GET"])
    @jwt_required()
    def admin_list_customers():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        return jsonify({"customers": catalog.get_customers(db)})

    @app.route("/api/admin/customers/<customer_id>", methods=["GET"])
    @jwt_required()
    def admin_get_customer(customer_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        customer = catalog.get_customer_by_id(db, customer_id)
        if not customer:
            return jsonify({"message": "Customer not found."}), 404
        return jsonify({"customer": customer})

    @app.route("/api/admin/customers", methods=["POST"])
    @jwt_required()
    def admin_create_customer():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        customer, validation_error = parse_payload(CustomerBase)
        if validation_error:
            return validation_error

        customer_id = catalog.add_customer(db, customer.model_dump(exclude_none=True))
        record_audit_log(current_actor(), "Created customer", {"customer_id": customer_id})
        return (
            jsonify(
                {
                    "message": "Customer created.",
                    "customer": catalog.get_customer_by_id(db, customer_id),
                }
            ),
            201,
        )

    @app.route("/api/admin/customers/<customer_id>", methods=["PUT", "PATCH"])
    @jwt_required()
    def admin_update_customer(customer_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        update, validation_error = parse_payload(CustomerUpdate)
        if validation_error:
            return validation_error

        try:
            catalog.update_customer(db, customer_id, update.model_dump(exclude_unset=True))
        except catalog.NotFoundError:
            return jsonify({"message": "Customer not found."}), 404

        record_audit_log(current_actor(), "Updated customer", {"customer_id": customer_id})
        return jsonify(
            {"message": "Customer updated.", "customer": catalog.get_customer_by_id(db, customer_id)}
        )

    @app.route("/api/admin/customers/<customer_id>", methods=["DELETE"])
    @jwt_required()
    def admin_delete_customer(customer_id: str):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        if not catalog.delete_customer(db, customer_id):
            return jsonify({"message": "Customer not found."}), 404
        record_audit_log(current_actor(), "Deleted customer", {"customer_id": customer_id})
        return jsonify({"message": "Customer removed successfully."})

    @app.route("/api/admin/customers/import", methods=["POST"])
    @jwt_required()
    def admin_import_customers():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        csv_text = read_csv_payload()
        if not csv_text:
            return jsonify({"message": "Please select a CSV file to import."}), 400

        try:
            raw_customers = csv_import.parse_customers_csv(csv_text)
        except csv_import.CsvImportError as exc:
            return jsonify({"message": str(exc)}), 400

        valid_customers: List[Dict] = []
        for raw_customer in raw_customers:
            try:
                valid_customers.append(
                    CustomerBase.model_validate(raw_customer).model_dump(exclude_none=True)
                )
            except ValidationError as exc:
                app.logger.warning("Skipping invalid imported customer: %s", exc.errors()[:3])

        if not valid_customers:
            return (
                jsonify(
                    {"message": "No valid customers found. The CSV file might be empty or formatted incorrectly."}
                ),
                400,
            )

        inserted_ids = catalog.import_customers(db, valid_customers)
        record_audit_log(current_actor(), "Imported customers", {"count": len(inserted_ids)})
        return (
            jsonify(
                {
                    "message": f"{len(inserted_ids)} customers have been imported.",
                    "imported": len(inserted_ids),
                    "skipped": len(raw_customers) - len(valid_customers),
                }
            ),
            201,
        )

    # Admin settings
    @app.route("/api/admin/settings/theme", methods=["GET"])
    @jwt_required()
    def admin_get_theme():
        _, permission_error = require_admin_user()
        if permission_error:
            return permission_error
        return jsonify({"settings": theme.get_theme_settings(db)})

    @app.route("/api/admin/settings/theme", methods=["PUT", "PATCH"])
    @jwt_required()
    def admin_update_theme():
        _, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        update, validation_error = parse_payload(ThemeSettingsUpdate)
        if validation_error:
            return validation_error

        values = update.model_dump(exclude_unset=True)
        theme.update_theme_settings(db, values)
        record_audit_log(
            current_actor(), "Updated theme settings", {"fields": ",".join(sorted(values))}
        )
        return jsonify({"message": "Settings saved.", "settings": theme.get_theme_settings(db)})

    # Admin uploads
    @app.route("/api/admin/uploads", methods=["POST"])
    @jwt_required()
    def admin_upload_image():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error

        payload = request.get_json(silent=True) or {}
        data_url = payload.get("dataUrl")
        folder = str(payload.get("folder") or "products")
        filename_context = str(payload.get("filenameContext") or "").strip()
        if not data_url:
            return jsonify({"message": "dataUrl is required."}), 400

        client = None
        if filename_context:
            client, _ = get_genai_client()

        try:
            if client is not None:
                url = storage.upload_image_with_generated_name(
                    data_url, folder, filename_context, flows.filename_generator(client)
                )
            else:
                url = storage.upload_image(data_url, folder)
        except MediaError as exc:
            return jsonify({"message": str(exc)}), 400

        return jsonify({"url": url}), 201

    # Admin AI tools
    def run_client_flow(flow):
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        client, client_error = get_genai_client()
        if client_error:
            return client_error
        result, flow_error = run_flow(flow, client, request.get_json(silent=True) or {})
        return flow_error or jsonify(result)

    @app.route("/api/admin/ai/collection-description", methods=["POST"])
    @jwt_required()
    def admin_generate_collection_description():
        return run_client_flow(flows.generate_collection_description)

    @app.route("/api/admin/ai/product-details", methods=["POST"])
    @jwt_required()
    def admin_generate_product_details():
        return run_client_flow(flows.generate_product_details)

    @app.route("/api/admin/ai/hero-text", methods=["POST"])
    @jwt_required()
    def admin_generate_hero_text():
        return run_client_flow(flows.generate_hero_text)

    @app.route("/api/admin/ai/filename", methods=["POST"])
    @jwt_required()
    def admin_generate_filename():
        return run_client_flow(flows.generate_filename)

    @app.route("/api/admin/ai/scrape", methods=["POST"])
    @jwt_required()
    def admin_scrape_product_url():
        return run_client_flow(flows.scrape_product_url)

    @app.route("/api/admin/ai/image", methods=["POST"])
    @jwt_required()
    def admin_generate_image():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        client, client_error = get_genai_client()
        if client_error:
            return client_error

        payload = request.get_json(silent=True) or {}
        result, flow_error = run_flow(flows.generate_image, client, payload)
        if flow_error:
            return flow_error

        if payload.get("upload"):
            try:
                result["uploadedUrl"] = storage.upload_image_with_generated_name(
                    result["imageUrl"],
                    "generated",
                    payload.get("prompt"),
                    flows.filename_generator(client),
                )
            except MediaError as exc:
                return jsonify({"message": str(exc)}), 502
        return jsonify(result)

    @app.route("/api/admin/ai/fetch-image", methods=["POST"])
    @jwt_required()
    def admin_fetch_and_upload_image():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        client, client_error = get_genai_client()
        if client_error:
            return client_error
        result, flow_error = run_flow(
            flows.fetch_and_upload_image,
            storage,
            flows.filename_generator(client),
            request.get_json(silent=True) or {},
            app.config["MAX_CONTENT_LENGTH"],
        )
        return flow_error or jsonify(result)

    # Admin shipping
    @app.route("/api/admin/shipping/rates", methods=["POST"])
    @jwt_required()
    def admin_shipping_rates():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        result, flow_error = run_flow(
            flows.create_shipment_flow,
            request.get_json(silent=True) or {},
            app.config.get("EASYPOST_API_KEY") or None,
        )
        return flow_error or jsonify(result)

    # Admin orders, quotes and logs
    @app.route("/api/admin/orders", methods=["GET"])
    @jwt_required()
    def admin_list_orders():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        order_documents = db[carts.ORDERS].find().sort("created_at", -1)
        return jsonify({"orders": [carts.serialize_order(document) for document in order_documents]})

    @app.route("/api/admin/quotes", methods=["GET"])
    @jwt_required()
    def admin_list_quotes():
        _, permission_error = require_staff_user()
        if permission_error:
            return permission_error
        quotes = []
        for document in db.quote_requests.find().sort("created_at", -1):
            created_at = document.get("created_at")
            quotes.append(
                {
                    **{key: value for key, value in document.items() if key not in ("_id", "created_at")},
                    "id": str(document["_id"]),
                    "created_at": created_at.isoformat() + "Z"
                    if isinstance(created_at, datetime)
                    else None,
                }
            )
        return jsonify({"quotes": quotes})

    @app.route("/api/admin/logs", methods=["GET"])
    @jwt_required()
    def admin_list_logs():
        _, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        try:
            limit = max(1, min(500, int(request.args.get("limit", 100))))
        except (TypeError, ValueError):
            limit = 100
        documents = audit_logs_collection.find().sort("created_at", -1).limit(limit)
        return jsonify({"logs": [serialize_audit_log(document) for document in documents]})

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
