# /clinic_app/utils/email_util.py
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app


def send_email(recipient_email: str, subject: str, text: str, html: str) -> bool:
    """
    Sends a plain-text + HTML email through the configured SMTP server.

    Returns False without raising when mail is not configured or delivery fails;
    the caller's request must not fail because of outbound mail.
    """
    config = current_app.config
    mail_server = config.get('MAIL_SERVER')
    mail_port = config.get('MAIL_PORT', 587)
    mail_username = config.get('MAIL_USERNAME')
    mail_password = config.get('MAIL_PASSWORD')

    if not all([mail_server, mail_port, mail_username, mail_password]):
        current_app.logger.error("Email server is not configured. Cannot send '%s' email.", subject)
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = mail_username
    message["To"] = recipient_email
    message.attach(MIMEText(text, "plain"))
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(mail_server, mail_port) as server:
            if config.get('MAIL_USE_TLS', True):
                server.starttls(context=ssl.create_default_context())
            server.login(mail_username, mail_password)
            server.sendmail(mail_username, recipient_email, message.as_string())
        current_app.logger.info("Sent '%s' email", subject)
        return True
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error("Failed to send '%s' email: %s", subject, e)
        return False


def send_verification_email(recipient_email: str, username: str, token: str) -> bool:
    link = f"{current_app.config['CLIENT_URL']}/verify/{token}"
    text = f"""
    Hello {username},

    Please verify your account by opening the link below:
    {link}
    """
    html = f"""
    <html>
      <body>
        <h2>Verify your account</h2>
        <p>Hello {username},</p>
        <p><a href="{link}">Click here to verify your email address.</a></p>
      </body>
    </html>
    """
    return send_email(recipient_email, "Verify your Caring Clinic account", text, html)


def send_password_reset_email(recipient_email: str, username: str, token: str) -> bool:
    link = f"{current_app.config['CLIENT_URL']}/reset-password/{token}"
    text = f"""
    Hello {username},

    A password reset was requested for your account. The link below is valid for one hour:
    {link}

    If you did not request this, you can ignore this email.
    """
    html = f"""
    <html>
      <body>
        <h2>Password reset</h2>
        <p>Hello {username},</p>
        <p><a href="{link}">Reset your password</a>. The link is valid for one hour.</p>
        <p>If you did not request this, you can ignore this email.</p>
      </body>
    </html>
    """
    return send_email(recipient_email, "Reset your Caring Clinic password", text, html)


def send_password_email(recipient_email: str, username: str, password: str) -> bool:
    """Sends a new doctor their login credentials."""
    text = f"""
    Hello Dr. {username},

    An account has been created for you.
    Your login email is: {recipient_email}
    Your temporary password is: {password}

    Please log in and change your password immediately.
    """
    html = f"""
    <html>
      <body>
        <h2>Welcome to Caring Clinic</h2>
        <p>Hello Dr. {username},</p>
        <ul>
          <li><strong>Email:</strong> {recipient_email}</li>
          <li><strong>Temporary Password:</strong> <code>{password}</code></li>
        </ul>
        <p>Please change this password after your first login.</p>
      </body>
    </html>
    """
    return send_email(recipient_email, "Your Caring Clinic Account Credentials", text, html)


def send_account_created_email(recipient_email: str, username: str, password: str, token: str) -> bool:
    """Sends an administrator-created account its temporary password and verification link."""
    link = f"{current_app.config['CLIENT_URL']}/verify/{token}"
    text = f"""
    Hello {username},

    A SuperAdmin has created a Caring Clinic account for you.
    Your temporary password is: {password}

    Verify your email address to activate the account:
    {link}

    Please change your password after your first login.
    """
    html = f"""
    <html>
      <body>
        <h2>Welcome to Caring Clinic</h2>
        <p>Hello {username},</p>
        <p>A SuperAdmin has created an account for you.</p>
        <p><strong>Temporary Password:</strong> <code>{password}</code></p>
        <p><a href="{link}">Verify your email address</a></p>
        <p>Please change this password after your first login.</p>
      </body>
    </html>
    """
    return send_email(recipient_email, "Welcome to Caring Clinic - verify your account", text, html)
