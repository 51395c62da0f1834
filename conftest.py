"""Shared pytest fixtures for Tourbook packages."""

import pytest


@pytest.fixture
def sample_purchase_data():
    """Purchase conversion as emitted by the booking flow."""
    return {
        "event": "purchase",
        "transaction_id": "ch_3NxTest",
        "booking_id": "BK-1042",
        "value": 13000,
        "currency": "JPY",
        "items": [
            {
                "item_id": "night-food-tour",
                "item_name": "Night Food Tour",
                "price": 13000,
                "quantity": 1,
            }
        ],
        "user_data": {"email": "guest@example.com"},
    }


@pytest.fixture
def sample_view_item_data():
    """Tour detail page view."""
    return {
        "event": "view_item",
        "items": [
            {
                "item_id": "t1",
                "item_name": "Morning Tour",
                "price": 8000,
                "quantity": 1,
            }
        ],
    }
