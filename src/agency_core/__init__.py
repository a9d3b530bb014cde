"""Agency metrics sync engine.

Polls marketing platforms (WooCommerce, Facebook Ads, MailerLite, WordPress)
for each configured integration and persists dated metrics snapshots.
"""
