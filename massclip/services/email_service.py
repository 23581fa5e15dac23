"""Transactional email through Resend."""

import html

import resend


def send_email(to, subject, html, *, api_key, sender, logger):
    """Send one email. Returns ``(ok, detail)`` and never raises."""
    recipient = str(to or '').strip()
    if not recipient:
        return False, 'Missing recipient.'
    if not api_key:
        logger.info(f"Email to {recipient} skipped: RESEND_API_KEY is not configured")
        return False, 'Resend API key is not configured.'
    previous_api_key = getattr(resend, 'api_key', None)
    resend.api_key = api_key
    try:
        response = resend.Emails.send({
            'from': sender,
            'to': [recipient],
            'subject': subject,
            'html': html,
        })
        email_id = (response or {}).get('id', '') if isinstance(response, dict) else getattr(response, 'id', '')
        logger.info(f"📧 Sent '{subject}' to {recipient} ({email_id})")
        return True, email_id
    except Exception as e:
        logger.error(f"❌ Failed to send '{subject}' to {recipient}: {e}")
        return False, str(e)
    finally:
        resend.api_key = previous_api_key


def render_guest_welcome(name, email, password, site_url):
    purchases_url = html.escape(f"{site_url or 'https://massclip.pro'}/dashboard/purchases")
    name, email, password = (html.escape(str(value or '')) for value in (name, email, password))
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Welcome to MassClip, {name}!</h2>
  <p>Thank you for your purchase! We've created an account for you to access your content.</p>
  <div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>Your Login Credentials:</h3>
    <p><strong>Email:</strong> {email}</p>
    <p><strong>Password:</strong> {password}</p>
  </div>
  <p>You can now log in to access your purchased content at: <a href="{purchases_url}">{purchases_url}</a></p>
  <p><strong>Important:</strong> Please change your password after your first login.</p>
</div>
""".strip()


def render_sale_notification(creator_name, bundle_title, buyer_name, amount, currency):
    creator_name, bundle_title, buyer_name = (
        html.escape(str(value or '')) for value in (creator_name, bundle_title, buyer_name)
    )
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>You made a sale, {creator_name}!</h2>
  <p><strong>{buyer_name}</strong> just purchased <strong>{bundle_title}</strong>
  for {amount:.2f} {str(currency or 'usd').upper()}.</p>
  <p>Check your dashboard for earnings details.</p>
</div>
""".strip()
