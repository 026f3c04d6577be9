"""InvoiceTemplate model - company header printed on invoice PDFs."""
from sqlalchemy import Column, BigInteger, String, Numeric, Text, ForeignKey
from ealbaran.database import Base, BigIntPK


class InvoiceTemplate(Base):
    """One template per tenant."""

    __tablename__ = 'invoice_template'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, unique=True)
    company_name = Column(String(255), nullable=True)
    company_address = Column(Text, nullable=True)
    company_city = Column(String(120), nullable=True)
    company_postal_code = Column(String(20), nullable=True)
    company_tax_id = Column(String(50), nullable=True)
    company_phone = Column(String(50), nullable=True)
    company_email = Column(String(255), nullable=True)
    bank_account = Column(String(64), nullable=True)
    invoice_prefix = Column(String(20), nullable=True)
    default_tax_rate = Column(Numeric(5, 2), nullable=True)
    footer_text = Column(Text, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'companyName': self.company_name,
            'companyAddress': self.company_address,
            'companyCity': self.company_city,
            'companyPostalCode': self.company_postal_code,
            'companyTaxId': self.company_tax_id,
            'companyPhone': self.company_phone,
            'companyEmail': self.company_email,
            'bankAccount': self.bank_account,
            'invoicePrefix': self.invoice_prefix,
            'defaultTaxRate': float(self.default_tax_rate) if self.default_tax_rate is not None else None,
            'footerText': self.footer_text,
        }
