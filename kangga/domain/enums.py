"""Domain enumerations and state-transition rules."""

import enum


class JobKind(str, enum.Enum):
    RIDE = "ride"
    DELIVERY = "delivery"


class JobStatus(str, enum.Enum):
    REQUESTED = "requested"
    # rides
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    # deliveries
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"

    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.REQUESTED: {JobStatus.ACCEPTED, JobStatus.CANCELLED},
    JobStatus.ACCEPTED: {JobStatus.IN_PROGRESS, JobStatus.CANCELLED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
}

DELIVERY_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.REQUESTED: {JobStatus.ASSIGNED, JobStatus.CANCELLED},
    JobStatus.ASSIGNED: {JobStatus.PICKED_UP, JobStatus.CANCELLED},
    JobStatus.PICKED_UP: {
        JobStatus.IN_TRANSIT,
        JobStatus.DELIVERED,
        JobStatus.CANCELLED,
    },
    JobStatus.IN_TRANSIT: {JobStatus.DELIVERED, JobStatus.CANCELLED},
    JobStatus.DELIVERED: set(),
    JobStatus.CANCELLED: set(),
}

TRANSITIONS: dict[JobKind, dict[JobStatus, set[JobStatus]]] = {
    JobKind.RIDE: RIDE_TRANSITIONS,
    JobKind.DELIVERY: DELIVERY_TRANSITIONS,
}

# The status a job enters when an assignee is bound to it
ASSIGNED_STATUS: dict[JobKind, JobStatus] = {
    JobKind.RIDE: JobStatus.ACCEPTED,
    JobKind.DELIVERY: JobStatus.ASSIGNED,
}

TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.DELIVERED, JobStatus.CANCELLED}
)

# Status -> job column stamped when the status is entered
PHASE_TIMESTAMPS: dict[JobStatus, str] = {
    JobStatus.ACCEPTED: "accepted_at",
    JobStatus.ASSIGNED: "accepted_at",
    JobStatus.IN_PROGRESS: "started_at",
    JobStatus.PICKED_UP: "started_at",
    JobStatus.IN_TRANSIT: "in_transit_at",
    JobStatus.COMPLETED: "completed_at",
    JobStatus.DELIVERED: "completed_at",
    JobStatus.CANCELLED: "cancelled_at",
}


class NegotiationStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CancellationReason(str, enum.Enum):
    PASSENGER_BEFORE_ACCEPT = "cancelled_by_passenger_before_accept"
    PASSENGER_AFTER_ACCEPT = "cancelled_by_passenger_after_accept"
    SENDER_BEFORE_ACCEPT = "cancelled_by_sender_before_accept"
    SENDER_AFTER_ACCEPT = "cancelled_by_sender_after_accept"
    DRIVER = "cancelled_by_driver"
    COURIER = "cancelled_by_courier"
    DRIVER_NO_SHOW = "timed_out_driver_no_show"
    COURIER_NO_SHOW = "timed_out_courier_no_show"
    SYSTEM = "cancelled_by_system"
    NO_ASSIGNEE_FOUND = "no_assignee_found"


# Only these cancellations return the platform fee to the assignee
NO_SHOW_REASONS = frozenset(
    {CancellationReason.DRIVER_NO_SHOW, CancellationReason.COURIER_NO_SHOW}
)


class AssigneeRole(str, enum.Enum):
    DRIVER = "driver"
    COURIER = "courier"


ASSIGNEE_ROLE: dict[JobKind, AssigneeRole] = {
    JobKind.RIDE: AssigneeRole.DRIVER,
    JobKind.DELIVERY: AssigneeRole.COURIER,
}


class VehicleType(str, enum.Enum):
    MOTORCYCLE = "MOTORCYCLE"
    TRICYCLE = "TRICYCLE"
    CAR = "CAR"


class ServiceType(str, enum.Enum):
    MOTORCYCLE = "MOTORCYCLE"
    TRICYCLE = "TRICYCLE"
    CAR = "CAR"
    SEND_PACKAGE = "SEND_PACKAGE"


class PackageSize(str, enum.Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class TransactionType(str, enum.Enum):
    LOAD = "load"
    DEDUCT = "deduct"
    ADJUST = "adjust"


class FeeType(str, enum.Enum):
    FLAT = "FLAT"
    PCT = "PCT"
