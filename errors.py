# errors.py
"""Domain errors raised by the ledger, policy and data helpers.

Routers let these propagate; main.py renders them as ``{"detail": message}``
with the status code carried by the exception class.
"""


class BillingError(Exception):
  status_code = 400

  def __init__(self, message: str):
    super().__init__(message)
    self.message = message


class NotFoundError(BillingError):
  status_code = 404

  def __init__(self, entity: str, entity_id=None):
    self.entity = entity
    self.entity_id = entity_id
    super().__init__(f"{entity.capitalize()} not found")


class InvalidRequestError(BillingError):
  status_code = 400


class AccessDenied(BillingError):
  status_code = 403

  def __init__(self, message: str = "Forbidden"):
    super().__init__(message)
