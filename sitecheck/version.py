"""Sitecheck Vault Meta information.
   Sitecheck Vault keeps operator credentials for unattended automation
   behind a single password, with per-project scoped tokens.
"""
__title__ = 'sitecheck_vault'
__description__ = (
   'Sitecheck Vault keeps operator credentials for unattended automation '
   'behind a single password, with per-project scoped tokens.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Sitecheck Maintainers'
__author__ = 'Sitecheck Maintainers'
__author_email__ = 'maintainers@sitecheck.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/sitecheck/sitecheck'
