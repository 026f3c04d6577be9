"""Quote service - transport pricing, quote lifecycle and worker assignment."""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ealbaran.exceptions import BusinessLogicError, NotFoundError, ValidationError
from ealbaran.models import PricingRule, Quote, QuoteStatus, VehicleType, Worker
from ealbaran.utils.number_format import parse_amount

logger = logging.getLogger(__name__)

URGENT_SURCHARGE = Decimal('1.25')

# Allowed manual status changes
QUOTE_TRANSITIONS = {
    QuoteStatus.PENDING.value: {QuoteStatus.CONFIRMED.value, QuoteStatus.CANCELLED.value},
    QuoteStatus.CONFIRMED.value: {QuoteStatus.ASSIGNED.value, QuoteStatus.CANCELLED.value, QuoteStatus.PENDING.value},
    QuoteStatus.ASSIGNED.value: {QuoteStatus.CANCELLED.value, QuoteStatus.CONFIRMED.value},
    QuoteStatus.CANCELLED.value: {QuoteStatus.PENDING.value},
}


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def list_vehicle_types(session: Session, tenant_id: int, only_active: bool = True) -> List[VehicleType]:
    query = session.query(VehicleType).filter(VehicleType.tenant_id == tenant_id)
    if only_active:
        query = query.filter(VehicleType.active.is_(True))
    return query.order_by(VehicleType.name.asc()).all()


def create_vehicle_type(session: Session, tenant_id: int, data: Dict[str, Any]) -> VehicleType:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('El nombre del vehículo es requerido', field='name')
    try:
        multiplier = parse_amount(data.get('priceMultiplier', 1), 'multiplicador')
    except ValueError as e:
        raise ValidationError(str(e), field='priceMultiplier')
    if multiplier <= 0:
        raise ValidationError('El multiplicador debe ser mayor a 0', field='priceMultiplier')

    vehicle = VehicleType(
        tenant_id=tenant_id,
        name=name,
        description=data.get('description'),
        capacity=data.get('capacity'),
        price_multiplier=multiplier,
        active=bool(data.get('isActive', True)),
    )
    session.add(vehicle)
    session.commit()
    return vehicle


def list_pricing_rules(session: Session, tenant_id: int) -> List[PricingRule]:
    return session.query(PricingRule).filter(
        PricingRule.tenant_id == tenant_id
    ).order_by(PricingRule.zone.asc(), PricingRule.min_km.asc()).all()


def create_pricing_rule(session: Session, tenant_id: int, data: Dict[str, Any]) -> PricingRule:
    """
    Create a distance band.

    Raises:
        ValidationError: missing fields, negative amounts or min_km > max_km
    """
    try:
        zone = int(data.get('zone'))
        min_km = int(data.get('minKm'))
        max_km = int(data.get('maxKm'))
    except (TypeError, ValueError):
        raise ValidationError('Zona y rango de kilómetros deben ser números enteros')
    if min_km < 0 or max_km < min_km:
        raise ValidationError('Rango de kilómetros inválido', field='maxKm')

    try:
        base_price = parse_amount(data.get('basePrice'), 'precio base')
        price_per_km = Decimal(str(data.get('pricePerKm')))
        toll_surcharge = parse_amount(data.get('tollSurcharge') or 0, 'peajes')
        min_price = parse_amount(data.get('minPrice') or 0, 'precio mínimo')
    except (ValueError, ArithmeticError) as e:
        raise ValidationError(str(e))
    if price_per_km < 0:
        raise ValidationError('El precio por km no puede ser negativo', field='pricePerKm')

    rule = PricingRule(
        tenant_id=tenant_id,
        zone=zone,
        name=(data.get('name') or f'Zona {zone}').strip(),
        country=data.get('country') or 'España',
        min_km=min_km,
        max_km=max_km,
        base_price=base_price,
        price_per_km=price_per_km,
        toll_surcharge=toll_surcharge,
        min_price=min_price,
        active=bool(data.get('isActive', True)),
    )
    session.add(rule)
    session.commit()
    return rule


def find_pricing_rule(session: Session, tenant_id: int, distance_km: Decimal) -> Optional[PricingRule]:
    """Lowest active zone whose band covers the distance."""
    rules = session.query(PricingRule).filter(
        PricingRule.tenant_id == tenant_id,
        PricingRule.active.is_(True)
    ).order_by(PricingRule.zone.asc(), PricingRule.min_km.asc()).all()
    for rule in rules:
        if rule.covers(distance_km):
            return rule
    return None


def price_breakdown(rule: PricingRule, vehicle: Optional[VehicleType], distance_km: Decimal,
                    is_urgent: bool = False) -> Dict[str, Decimal]:
    """
    Compute the price of a route.

    total = max(base + km * price_per_km + tolls, min_price) * vehicle multiplier,
    plus 25% when urgent.
    """
    distance_cost = _money(distance_km * Decimal(rule.price_per_km))
    toll_cost = _money(Decimal(rule.toll_surcharge or 0))
    subtotal = max(Decimal(rule.base_price) + distance_cost + toll_cost, Decimal(rule.min_price))
    multiplier = Decimal(vehicle.price_multiplier) if vehicle else Decimal('1')
    priced = _money(subtotal * multiplier)
    extras_cost = _money(priced * (URGENT_SURCHARGE - 1)) if is_urgent else Decimal('0.00')
    return {
        'base_price': _money(Decimal(rule.base_price)),
        'distance_cost': distance_cost,
        'toll_cost': toll_cost,
        'vehicle_multiplier': multiplier,
        'extras_cost': extras_cost,
        'total_price': priced + extras_cost,
    }


def calculate_quote(session: Session, tenant_id: int, data: Dict[str, Any], user_id: Optional[int] = None) -> Quote:
    """
    Price a route and persist it as a pending quote.

    Args:
        data: origin, destination, distanceKm, durationMinutes?, vehicleTypeId?,
              clientName?, isUrgent?, pickupTime?, observations?

    Raises:
        ValidationError: missing route data or no pricing rule for the distance
    """
    origin = (data.get('origin') or '').strip()
    destination = (data.get('destination') or '').strip()
    if not origin or not destination:
        raise ValidationError('Origen y destino son requeridos')

    try:
        distance_km = parse_amount(data.get('distanceKm', data.get('distance')), 'distancia')
    except ValueError as e:
        raise ValidationError(str(e), field='distanceKm')

    vehicle = None
    if data.get('vehicleTypeId'):
        vehicle = session.query(VehicleType).filter(
            VehicleType.id == data['vehicleTypeId'],
            VehicleType.tenant_id == tenant_id
        ).first()
        if not vehicle:
            raise ValidationError('Tipo de vehículo no encontrado', field='vehicleTypeId')

    rule = find_pricing_rule(session, tenant_id, distance_km)
    if not rule:
        raise ValidationError(f'No hay tarifa configurada para {distance_km} km', field='distanceKm')

    is_urgent = bool(data.get('isUrgent'))
    breakdown = price_breakdown(rule, vehicle, distance_km, is_urgent)

    extras = {'isUrgent': is_urgent}
    for key in ('pickupTime', 'observations', 'phoneNumber'):
        if data.get(key):
            extras[key] = data[key]

    quote = Quote(
        tenant_id=tenant_id,
        user_id=user_id,
        vehicle_type_id=vehicle.id if vehicle else None,
        vehicle_type_name=vehicle.name if vehicle else None,
        pricing_rule_id=rule.id,
        zone_name=rule.name,
        client_name=data.get('clientName') or data.get('name'),
        origin=origin,
        destination=destination,
        distance_km=distance_km,
        duration_minutes=data.get('durationMinutes') or data.get('duration'),
        extras=extras,
        status=QuoteStatus.PENDING.value,
        **breakdown
    )
    session.add(quote)
    session.commit()

    logger.info(f"[QUOTE] Quote {quote.id} priced at {quote.total_price} ({distance_km} km, zone {rule.zone})")
    return quote


def list_quotes(session: Session, tenant_id: int, status: Optional[str] = None,
                worker_id: Optional[int] = None) -> List[Quote]:
    query = session.query(Quote).filter(Quote.tenant_id == tenant_id)
    if status:
        query = query.filter(Quote.status == status)
    if worker_id is not None:
        query = query.filter(Quote.worker_id == worker_id)
    return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def get_quote(session: Session, tenant_id: int, quote_id: int) -> Quote:
    quote = session.query(Quote).filter(Quote.id == quote_id, Quote.tenant_id == tenant_id).first()
    if not quote:
        raise NotFoundError(f'Presupuesto {quote_id} no encontrado.')
    return quote


def update_quote_status(session: Session, tenant_id: int, quote_id: int, status: str) -> Quote:
    """
    Move a quote to another status.

    Raises:
        ValidationError: unknown status
        BusinessLogicError: transition not allowed
    """
    if status not in QUOTE_TRANSITIONS:
        raise ValidationError(f'Estado de presupuesto inválido: {status}', field='status')

    quote = get_quote(session, tenant_id, quote_id)
    if status == quote.status:
        return quote
    if status not in QUOTE_TRANSITIONS[quote.status]:
        raise BusinessLogicError(f'No se puede pasar un presupuesto de {quote.status} a {status}')

    quote.status = status
    if status in (QuoteStatus.PENDING.value, QuoteStatus.CONFIRMED.value) and quote.worker_id:
        quote.worker_id = None
    session.commit()
    logger.info(f"[QUOTE] Quote {quote.id} -> {status}")
    return quote


def confirm_quote(session: Session, tenant_id: int, quote_id: int) -> Quote:
    return update_quote_status(session, tenant_id, quote_id, QuoteStatus.CONFIRMED.value)


def assign_worker(session: Session, tenant_id: int, quote_id: int, worker_id: int) -> Quote:
    """
    Hand a quote to an active worker of the same tenant.

    Raises:
        NotFoundError: quote or worker not found
        BusinessLogicError: cancelled quote or inactive worker
    """
    quote = get_quote(session, tenant_id, quote_id)
    if not quote.is_assignable:
        raise BusinessLogicError('No se puede asignar un presupuesto cancelado')

    worker = session.query(Worker).filter(Worker.id == worker_id, Worker.tenant_id == tenant_id).first()
    if not worker:
        raise NotFoundError(f'Trabajador {worker_id} no encontrado.')
    if not worker.active:
        raise BusinessLogicError(f'El trabajador "{worker.name}" no está activo')

    quote.worker_id = worker.id
    quote.status = QuoteStatus.ASSIGNED.value
    session.commit()
    logger.info(f"[QUOTE] Quote {quote.id} assigned to worker {worker.id}")
    return quote
