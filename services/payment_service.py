"""
Razorpay Payment Service for resident payments
"""
import json
import time
import logging
from datetime import datetime, timezone

import razorpay
from razorpay.errors import SignatureVerificationError

from utils.error_handling import APIError

# Setup logging
logger = logging.getLogger(__name__)

VALID_STATUSES = ('pending', 'success', 'failed', 'cancelled')

WEBHOOK_EVENTS = {
    'payment.captured': ('success', 'Payment captured'),
    'payment.failed': ('failed', 'Payment failed'),
    'payment.authorized': ('pending', 'Payment authorized'),
}


def _now():
    return datetime.now(timezone.utc).isoformat()


def summarize_payments(payments):
    """Summary block returned alongside a resident's payment history"""
    total = len(payments)
    successful = len([p for p in payments if p.get('status') == 'success'])
    pending = len([p for p in payments if p.get('status') == 'pending'])
    total_amount = sum(float(p.get('amount') or 0) for p in payments)
    return {
        'totalPayments': total,
        'successfulPayments': successful,
        'pendingPayments': pending,
        'totalAmount': total_amount,
        'successRate': (successful / total) * 100 if total > 0 else 0,
    }


class PaymentService:
    def __init__(self, payment_repo=None, key_id='', key_secret='', webhook_secret='', client=None):
        self.payment_repo = payment_repo
        self.key_id = key_id
        self.webhook_secret = webhook_secret
        self.client = client

        # Initialize Razorpay client
        if self.client is None and key_id and key_secret:
            self.client = razorpay.Client(auth=(key_id, key_secret))
            logger.info("Razorpay payment service initialized")
        elif self.client is None:
            logger.debug("Razorpay not configured. Checkout will be disabled.")

    def create_order(self, amount, user_id, description='UPI Payment'):
        """
        Create a Razorpay order; amount is in rupees
        """
        if not self.client:
            logger.error("Razorpay client not initialized")
            return None

        try:
            order = self.client.order.create(data={
                'amount': int(round(float(amount) * 100)),
                'currency': 'INR',
                'receipt': f'payment_{user_id}_{int(time.time())}',
                'notes': {'user_id': user_id, 'description': description},
            })
            logger.info(f"Payment order created: {order['id']}")
            return order
        except Exception as e:
            logger.error(f"Error creating payment order: {str(e)}")
            return None

    def checkout_options(self, amount, user):
        """
        Build the options object handed to Razorpay's checkout.js
        """
        order = self.create_order(amount, user.get('id'))
        if not order:
            return None
        return {
            'key': self.key_id,
            'amount': order.get('amount', int(round(float(amount) * 100))),
            'currency': order.get('currency', 'INR'),
            'order_id': order['id'],
            'name': user.get('name') or 'CoHub Resident',
            'description': 'UPI Payment',
            'prefill': {
                'name': user.get('name') or '',
                'email': user.get('email') or '',
                'contact': user.get('phone') or '',
            },
        }

    def verify_checkout(self, order_id, payment_id, signature, user_id):
        """
        Verify the checkout handler's signature and record the payment.
        The signature covers only the order and payment ids, so the amount
        is read back from the Razorpay order.
        """
        if not self.client:
            logger.error("Razorpay client not initialized")
            return False

        try:
            self.client.utility.verify_payment_signature({
                'razorpay_order_id': order_id,
                'razorpay_payment_id': payment_id,
                'razorpay_signature': signature,
            })
        except SignatureVerificationError as e:
            logger.error(f"Payment verification failed: {str(e)}")
            return False

        try:
            order = self.client.order.fetch(order_id)
        except Exception as e:
            logger.error(f"Error fetching order {order_id}: {str(e)}")
            return False
        order_user = (order.get('notes') or {}).get('user_id')
        if order_user and order_user != user_id:
            logger.error(f"Order {order_id} belongs to another user")
            return False

        if self.payment_repo and not self.payment_repo.find_by_razorpay_id(payment_id):
            self.payment_repo.insert_payment({
                'user_id': user_id,
                'razorpay_payment_id': payment_id,
                # Razorpay reports paise
                'amount': (order.get('amount') or 0) / 100,
                'currency': 'INR',
                'status': 'success',
                'description': 'UPI Payment',
                'payment_method': 'razorpay',
            })
        logger.info(f"Payment verified successfully: {payment_id}")
        return True

    def store_payment(self, payment_data, user_id):
        """
        Validate and insert a payment reported by the client
        """
        payment_data = payment_data or {}
        if not payment_data.get('razorpay_payment_id') or not payment_data.get('amount') or not payment_data.get('status'):
            raise APIError(400, {'error': 'Missing required fields: razorpay_payment_id, amount, status'})
        if not user_id:
            raise APIError(400, {'error': 'User ID is required'})
        if payment_data['status'] not in VALID_STATUSES:
            raise APIError(400, {'error': f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}"})

        if not self.payment_repo:
            raise APIError(500, {'error': 'Database not configured'})
        if self.payment_repo.find_by_razorpay_id(payment_data['razorpay_payment_id']):
            raise APIError(409, {'error': 'Payment with this Razorpay ID already exists'})

        try:
            payment = self.payment_repo.insert_payment({
                'user_id': user_id,
                'razorpay_payment_id': payment_data['razorpay_payment_id'],
                'amount': payment_data['amount'],
                'currency': payment_data.get('currency') or 'INR',
                'status': payment_data['status'],
                'description': payment_data.get('description') or None,
                'payment_method': payment_data.get('payment_method') or None,
            })
        except Exception as e:
            logger.error(f"Supabase error: {str(e)}")
            raise APIError(500, {'error': 'Failed to store payment details', 'details': str(e)})

        return {
            'success': True,
            'payment': payment,
            'message': 'Payment details stored successfully',
        }

    def get_user_payments(self, user_id):
        if not user_id:
            raise APIError(400, {'error': 'User ID is required'})
        if not self.payment_repo:
            raise APIError(500, {'error': 'Database not configured'})
        try:
            payments = self.payment_repo.list_for_user(user_id)
        except Exception as e:
            logger.error(f"Supabase error: {str(e)}")
            raise APIError(500, {'error': 'Failed to fetch payments', 'details': str(e)})
        return {
            'success': True,
            'payments': payments,
            'summary': summarize_payments(payments),
        }

    def handle_webhook(self, raw_body, signature):
        """
        Verify a Razorpay webhook against the raw request body and apply it
        """
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured")
            raise APIError(500, {'error': 'Webhook secret not configured'})
        if not signature:
            raise APIError(400, {'error': 'Missing signature'})

        if isinstance(raw_body, bytes):
            raw_body = raw_body.decode('utf-8')
        utility = (self.client or razorpay.Client()).utility
        try:
            utility.verify_webhook_signature(raw_body, signature, self.webhook_secret)
        except SignatureVerificationError:
            logger.error("Invalid webhook signature")
            raise APIError(400, {'error': 'Invalid signature'})

        try:
            body = json.loads(raw_body)
        except ValueError:
            raise APIError(400, {'error': 'Invalid JSON body'})
        if not isinstance(body, dict):
            raise APIError(400, {'error': 'Invalid JSON body'})

        event = body.get('event')
        logger.info(f"Razorpay webhook received: {event}")
        if event not in WEBHOOK_EVENTS:
            logger.info(f"Unhandled webhook event: {event}")
            return {'success': True}

        entity = ((body.get('payload') or {}).get('payment') or {}).get('entity') or {}
        status, default_description = WEBHOOK_EVENTS[event]
        try:
            self._apply_payment_event(entity, status, default_description)
        except Exception as e:
            logger.error(f"Error handling {event}: {str(e)}")
        return {'success': True}

    def _apply_payment_event(self, entity, status, default_description):
        payment_id = entity.get('id')
        if not payment_id or not self.payment_repo:
            logger.error("Webhook payment entity has no id or no database configured")
            return

        if self.payment_repo.find_by_razorpay_id(payment_id):
            self.payment_repo.update_by_razorpay_id(payment_id, {
                'status': status,
                'updated_at': _now(),
            })
            logger.info(f"Payment status updated to {status}: {payment_id}")
        else:
            self.payment_repo.insert_payment({
                'razorpay_payment_id': payment_id,
                # Razorpay reports paise
                'amount': (entity.get('amount') or 0) / 100,
                'currency': entity.get('currency'),
                'status': status,
                'description': entity.get('description') or default_description,
                'payment_method': entity.get('method'),
            })
            logger.info(f"New {status} payment record created: {payment_id}")
