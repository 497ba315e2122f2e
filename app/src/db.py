from secrets import token_hex
from sqlalchemy import (
    TEXT,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from app.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
    DECIMAL_PRECISION,
    DECIMAL_SCALE,
)
from app.src.enums import (
    UserRole,
    PlatformType,
    OrderStatus,
    PaymentStatus,
    VehicleStatus,
    OperatorStatus,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


def moneyType() -> Numeric:
    return Numeric(DECIMAL_PRECISION, DECIMAL_SCALE, asdecimal=True)


# ----------------------------------- Account DB Models ---------------------------------------#
class User(ORMbase):
    """
    Represents a person using the platform: an administrator, a client who
    places fuel orders or a provider who dispatches and delivers them.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the user.

        first_name (String(100)):
            Given name of the user. Must not be null.

        last_name (String(100)):
            Family name of the user. Must not be null.

        email_id (String(255)):
            Email address used for login.
            Enforce the format prescribed by RFC 5322.
            Must be unique and not null.

        password (TEXT):
            Hashed password used for authentication.
            Plaintext should never be stored here. Argon2 is used for secure hashing.

        phone_number (String(32)):
            Optional contact number of the user.
            Saved and processed in RFC3966 format.

        role (Integer):
            Role of the user. Mapped from the `UserRole` enum.
            Defaults to `UserRole.CLIENT`.

        refresh_token (String(64)):
            Optional 64-character hexadecimal token used to obtain new access tokens.
            Rotated every time it is used.

        refresh_token_expires_at (DateTime):
            Date and time after which the refresh token becomes invalid.

        updated_on (DateTime):
            Timestamp automatically updated whenever the user's profile is modified.

        created_on (DateTime):
            Timestamp of when the user account was created.

    Dependants:
        - `order.user_id` restricts the deletion of the user.
        - `payment_method`, `notification` and `user_token` rows are deleted with the user.
    """

    __tablename__ = "user"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email_id = Column(String(255), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    phone_number = Column(String(32))
    role = Column(Integer, nullable=False, default=UserRole.CLIENT)
    # Refresh token
    refresh_token = Column(String(64), unique=True)
    refresh_token_expires_at = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class UserToken(ORMbase):
    """
    Represents an access token issued to a user, enabling secure access to
    the platform with support for token expiration and client metadata tracking.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        user_id (Integer):
            Foreign key referencing `user.id`.
            Cascades on delete - if the user is removed, related tokens are deleted.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.
            Automatically generated using a secure random function.

        expires_in (Integer):
            Token expiration time in seconds.

        expires_at (DateTime):
            Token expiration date and time.

        platform_type (Integer):
            Enum value indicating the client platform type.
            Defaults to `PlatformType.OTHER`.

        client_details (TEXT):
            Optional description of the client device or environment.
            Maximum 1024 characters long.

        updated_on (DateTime):
            Timestamp automatically updated whenever the token record is modified.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "user_token"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Device related details
    platform_type = Column(Integer, default=PlatformType.OTHER)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ------------------------------------ Fleet DB Models ----------------------------------------#
class Vehicle(ORMbase):
    """
    Represents a tanker vehicle of the delivery fleet.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the vehicle.

        license_plate (String(20)):
            This should be an immutable value.
            Must be unique and non-null.

        brand (String(100)):
            Manufacturer of the vehicle.

        model (String(100)):
            Model name of the vehicle.

        year (Integer):
            Year of manufacture.

        capacity (Numeric(18, 2)):
            Tank capacity in liters. An order larger than this cannot be
            assigned to the vehicle.

        status (Integer):
            Operational status (AVAILABLE, IN_USE, MAINTENANCE, OUT_OF_SERVICE).
            Only AVAILABLE vehicles can be assigned to an order.
            Defaults to `VehicleStatus.AVAILABLE`.

        current_latitude (Float), current_longitude (Float):
            Last known position of the vehicle, in WGS 84 degrees.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the vehicle record was initially created.

    Dependants:
        - `order.vehicle_id` is set to NULL when the vehicle is deleted.
    """

    __tablename__ = "vehicle"

    id = Column(Integer, primary_key=True)
    license_plate = Column(String(20), nullable=False, unique=True)
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    capacity = Column(moneyType(), nullable=False)
    status = Column(Integer, nullable=False, default=VehicleStatus.AVAILABLE)
    # Location
    current_latitude = Column(Float)
    current_longitude = Column(Float)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Operator(ORMbase):
    """
    Represents a licensed driver who operates a vehicle during a delivery.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the operator.

        first_name (String(100)), last_name (String(100)):
            Name of the operator.

        license_number (String(20)):
            Driving licence number. Must be unique and non-null.

        license_expiry_date (DateTime):
            Date on which the driving licence expires.
            Operators with an expired licence cannot be assigned.

        phone_number (String(32)):
            Optional contact number in RFC3966 format.

        status (Integer):
            Availability of the operator (AVAILABLE, ON_DELIVERY, OFF_DUTY).
            Defaults to `OperatorStatus.AVAILABLE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the operator record was created.

    Dependants:
        - `order.operator_id` is set to NULL when the operator is deleted.
    """

    __tablename__ = "operator"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    license_number = Column(String(20), nullable=False, unique=True)
    license_expiry_date = Column(DateTime(timezone=True), nullable=False)
    phone_number = Column(String(32))
    status = Column(Integer, nullable=False, default=OperatorStatus.AVAILABLE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ------------------------------------ Order DB Models ----------------------------------------#
class Order(ORMbase):
    """
    Represents a fuel order placed by a client.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the order.

        user_id (Integer):
            Foreign key referencing `user.id`. The client who placed the order.
            Restricts on delete - a user with orders cannot be removed.

        order_number (String(50)):
            Human readable order reference, generated by the server.
            Must be unique and non-null.

        fuel_type (Integer):
            Mapped from the `FuelType` enum.

        quantity (Numeric(18, 2)):
            Ordered volume in liters.

        price_per_liter (Numeric(18, 2)):
            Unit price at the time of ordering.

        total_amount (Numeric(18, 2)):
            quantity * price_per_liter, rounded half up to 2 decimal places.

        status (Integer):
            Lifecycle state of the order. Mapped from the `OrderStatus` enum.
            PENDING -> CONFIRMED -> IN_TRANSIT -> DELIVERED, or CANCELLED from
            any state before DELIVERED. DELIVERED and CANCELLED are terminal.

        delivery_address (String(500)):
            Address the fuel has to be delivered to.

        delivery_latitude (Float), delivery_longitude (Float):
            Optional coordinates of the delivery address.

        estimated_delivery_time (DateTime):
            Optional delivery estimate given by the client or the provider.

        actual_delivery_time (DateTime):
            Set by the server when the order is DELIVERED.

        vehicle_id (Integer):
            Foreign key referencing `vehicle.id`. Set when the order is confirmed.
            Set to NULL when the vehicle is deleted.

        operator_id (Integer):
            Foreign key referencing `operator.id`. Set when the order is confirmed.
            Set to NULL when the operator is deleted.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the order was placed.

    Dependants:
        - `payment` rows are deleted with the order.
        - `notification.order_id` is set to NULL when the order is deleted.
    """

    __tablename__ = "order"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    order_number = Column(String(50), nullable=False, unique=True)
    fuel_type = Column(Integer, nullable=False)
    quantity = Column(moneyType(), nullable=False)
    price_per_liter = Column(moneyType(), nullable=False)
    total_amount = Column(moneyType(), nullable=False)
    status = Column(Integer, nullable=False, default=OrderStatus.PENDING)
    # Delivery details
    delivery_address = Column(String(500), nullable=False)
    delivery_latitude = Column(Float)
    delivery_longitude = Column(Float)
    estimated_delivery_time = Column(DateTime(timezone=True))
    actual_delivery_time = Column(DateTime(timezone=True))
    # Assignment
    vehicle_id = Column(
        Integer, ForeignKey("vehicle.id", ondelete="SET NULL"), index=True
    )
    operator_id = Column(
        Integer, ForeignKey("operator.id", ondelete="SET NULL"), index=True
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Payment DB Models ---------------------------------------#
class PaymentMethod(ORMbase):
    """
    Represents a payment card saved by a user.

    The full card number is never stored in plain text; it is encrypted with
    Fernet and only the last four digits are kept readable.

    Columns:
        id (Integer):
            Primary key.

        user_id (Integer):
            Foreign key referencing `user.id`.
            Cascades on delete - if the user is removed, the cards are deleted.

        card_holder_name (String(100)):
            Name printed on the card.

        last_four_digits (String(4)):
            Last four digits of the card number.

        card_type (String(50)):
            Card network or type, e.g. VISA.

        encrypted_card_number (TEXT):
            Fernet token of the card number.

        expiry_date (DateTime):
            Expiry date of the card.

        is_default (Boolean):
            Whether this card is the user's default payment method.
            At most one card per user is the default.

        updated_on (DateTime), created_on (DateTime):
            Metadata timestamps.

    Dependants:
        - `payment.payment_method_id` restricts the deletion of the card.
    """

    __tablename__ = "payment_method"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    card_holder_name = Column(String(100), nullable=False)
    last_four_digits = Column(String(4), nullable=False)
    card_type = Column(String(50), nullable=False)
    encrypted_card_number = Column(TEXT, nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Payment(ORMbase):
    """
    Represents a payment made against an order.

    Columns:
        id (Integer):
            Primary key.

        order_id (Integer):
            Foreign key referencing `order.id`.
            Cascades on delete - payments are removed with their order.

        payment_method_id (Integer):
            Foreign key referencing `payment_method.id`.
            Restricts on delete - a card used by a payment cannot be removed.

        amount (Numeric(18, 2)):
            Amount charged.

        status (Integer):
            Mapped from the `PaymentStatus` enum.
            PENDING -> COMPLETED | FAILED, COMPLETED -> REFUNDED.
            FAILED and REFUNDED are terminal.

        transaction_id (String(100)):
            Reference of the processed transaction. Set on completion.

        processed_at (DateTime):
            Time at which the payment left the PENDING state.

        updated_on (DateTime), created_on (DateTime):
            Metadata timestamps.
    """

    __tablename__ = "payment"

    id = Column(Integer, primary_key=True)
    order_id = Column(
        Integer,
        ForeignKey("order.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_method_id = Column(
        Integer,
        ForeignKey("payment_method.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(moneyType(), nullable=False)
    status = Column(Integer, nullable=False, default=PaymentStatus.PENDING)
    transaction_id = Column(String(100))
    processed_at = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# --------------------------------- Notification DB Models ------------------------------------#
class Notification(ORMbase):
    """
    Represents a message delivered to a user, either generated by the server
    on order and payment events or created by an administrator.

    Columns:
        id (Integer):
            Primary key.

        user_id (Integer):
            Foreign key referencing `user.id`. Cascades on delete.

        title (String(200)):
            Short title of the notification.

        message (String(1000)):
            Body of the notification.

        type (Integer):
            Mapped from the `NotificationType` enum.

        is_read (Boolean):
            Whether the user has read the notification. Defaults to False.

        order_id (Integer):
            Optional foreign key referencing `order.id`.
            Set to NULL when the order is deleted.

        updated_on (DateTime), created_on (DateTime):
            Metadata timestamps.
    """

    __tablename__ = "notification"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    type = Column(Integer, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    order_id = Column(Integer, ForeignKey("order.id", ondelete="SET NULL"))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
