"""
UPI Payment Service for direct transfers to the community account
"""
import base64
import io
import logging
from urllib.parse import urlencode, quote

import qrcode

# Setup logging
logger = logging.getLogger(__name__)


def build_upi_url(upi_id, payee_name, amount, note):
    """
    Create UPI payment URL that opens directly in UPI apps
    """
    # Format: upi://pay?pa=UPI_ID&pn=NAME&am=AMOUNT&cu=INR&tn=NOTE
    query = urlencode({
        'pa': upi_id,
        'pn': payee_name,
        'am': f"{float(amount):.2f}",
        'cu': 'INR',
        'tn': note,
    }, quote_via=quote, safe='@')
    return f"upi://pay?{query}"


def render_qr_base64(data):
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    # Convert to base64 for web display
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return base64.b64encode(buffer.getvalue()).decode()


class UPIPaymentService:
    def __init__(self, payment_repo=None, upi_id='', payee_name='CoHub Community'):
        self.payment_repo = payment_repo
        self.upi_id = upi_id
        self.payee_name = payee_name
        if not upi_id:
            logger.debug("UPI_ID not configured. UPI payments will be disabled.")

    def create_upi_payment_qr(self, amount, user_id, payer_name, note="Coliving Payment"):
        """
        Render a UPI intent QR and log a pending payment row for the resident
        """
        if not self.upi_id:
            return None
        upi_url = build_upi_url(self.upi_id, self.payee_name, amount, note)
        qr_code = render_qr_base64(upi_url)

        transaction_id = None
        if self.payment_repo:
            row = self.payment_repo.insert_payment({
                'user_id': user_id,
                'amount': float(amount),
                'currency': 'INR',
                'status': 'pending',
                'description': note,
                'payment_method': 'UPI',
                'upi_url': upi_url,
            })
            if row:
                transaction_id = row.get('id')
                logger.info(f"UPI payment request logged: {transaction_id}")
            else:
                logger.error("Failed to log UPI payment request")

        return {
            'upi_id': self.upi_id,
            'amount': float(amount),
            'qr_code': qr_code,
            'upi_url': upi_url,
            'note': note,
            'payer_name': payer_name,
            'transaction_id': transaction_id,
        }

    def submit_reference(self, transaction_id, user_id, upi_reference):
        """
        Attach the resident's UPI reference (UTR) to their pending payment.
        The row stays pending until it is reconciled against the bank statement.
        """
        if not transaction_id or not upi_reference:
            return False
        row = self.payment_repo.get_payment(transaction_id, user_id=user_id)
        if not row or row.get('status') != 'pending':
            logger.error(f"No pending UPI payment {transaction_id} for user {user_id}")
            return False
        updated = self.payment_repo.update_payment(transaction_id, {'upi_reference': upi_reference.strip()})
        if updated:
            logger.info(f"UPI reference recorded for payment {transaction_id}")
        return updated

    def get_status(self, transaction_id, user_id):
        row = self.payment_repo.get_payment(transaction_id, user_id=user_id)
        if not row:
            return None
        status = (row.get('status') or '').lower()
        return {
            'success': True,
            'status': status,
            'is_success': status == 'success',
            'amount': row.get('amount'),
            'upi_reference': row.get('upi_reference'),
        }
