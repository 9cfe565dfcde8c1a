"""
Domain exceptions raised by the order workflow.

The HTTP layer (main.py) maps each class to a status code; the workflow itself
never builds HTTP responses.
"""


class OrderWorkflowError(Exception):
    """Base class for all order workflow errors."""


class OrderNotFound(OrderWorkflowError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidOrderRequest(OrderWorkflowError):
    """Payload is structurally valid but violates an order invariant."""


class OrderCreationError(OrderWorkflowError):
    """The order could not be persisted (collision, storage unavailable)."""


class IllegalStatusTransition(OrderWorkflowError):
    def __init__(self, current, requested):
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class ShippingMethodNotFound(OrderWorkflowError):
    def __init__(self, method_id):
        super().__init__(f"Shipping method {method_id} not found")
        self.method_id = method_id


class PaymentConfigurationError(OrderWorkflowError):
    """The gateway credential is missing; verification fails closed."""


class PaymentVerificationFailed(OrderWorkflowError):
    """
    The gateway did not confirm the payment (rejected, amount mismatch or
    call error). A still-pending order has already been moved to
    (cancelled, failed) when this is raised.
    """

    def __init__(self, message, transport_error=False):
        super().__init__(message)
        self.transport_error = transport_error


class PaymentNotAllowed(OrderWorkflowError):
    """A payment cannot be opened for an order that is already paid."""
