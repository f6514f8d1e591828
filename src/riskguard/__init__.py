"""
RiskGuard - Risk & Compliance Monitoring Engine

A library for financial institutions that:
- Computes credit risk (PD, LGD, EAD, ECL, IFRS 9 staging)
- Computes market risk (historical, parametric and Monte Carlo VaR)
- Computes liquidity ratios and stress-scenario losses
- Screens and scores transactions for AML/CFT suspicion
- Raises de-duplicated alerts and regulatory report requests
"""

__version__ = "0.1.0"
