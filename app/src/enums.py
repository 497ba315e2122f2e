from enum import IntEnum


class AppID(IntEnum):
    ADMIN = 1
    CLIENT = 2
    PROVIDER = 3
    PUBLIC = 4


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class UserRole(IntEnum):
    ADMIN = 1
    CLIENT = 2
    PROVIDER = 3


class PlatformType(IntEnum):
    OTHER = 1
    WEB = 2
    NATIVE = 3
    SERVER = 4


class FuelType(IntEnum):
    GASOLINE = 1
    DIESEL = 2
    PREMIUM = 3


class OrderStatus(IntEnum):
    PENDING = 1
    CONFIRMED = 2
    IN_TRANSIT = 3
    DELIVERED = 4
    CANCELLED = 5


class PaymentStatus(IntEnum):
    PENDING = 1
    COMPLETED = 2
    FAILED = 3
    REFUNDED = 4


class VehicleStatus(IntEnum):
    AVAILABLE = 1
    IN_USE = 2
    MAINTENANCE = 3
    OUT_OF_SERVICE = 4


class OperatorStatus(IntEnum):
    AVAILABLE = 1
    ON_DELIVERY = 2
    OFF_DUTY = 3


class NotificationType(IntEnum):
    ORDER_UPDATE = 1
    PAYMENT_CONFIRMATION = 2
    DELIVERY_ALERT = 3
    SYSTEM_NOTIFICATION = 4
