from shop.checkout.coordinator import CheckoutCoordinator, CheckoutRequest

__all__ = ["CheckoutCoordinator", "CheckoutRequest"]
