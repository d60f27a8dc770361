from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


class Excavator(Base):
    __tablename__ = "Excavators"

    ExcavatorID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    Brand = Column(String(255), nullable=False)
    Type = Column(String(255))
    OperatorName = Column(String(255))
    RegularRatePerHour = Column(Integer, nullable=False, default=0)
    OvertimeRatePerHour = Column(Integer, nullable=False, default=0)
    Status = Column(String(20), nullable=False, default="Available")
    Stock = Column(Integer, nullable=False, default=1)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    RentalItems = relationship("RentalItem", back_populates="Excavator")
    Timesheets = relationship("Timesheet", back_populates="Excavator")


class Rental(Base):
    __tablename__ = "Rentals"

    RentalID = Column(Integer, primary_key=True)
    RenterName = Column(String(100), nullable=False)
    RenterPhone = Column(String(20), nullable=False)
    RenterEmail = Column(String(255))
    StartDate = Column(Date, nullable=False, index=True)
    EndDate = Column(Date, nullable=False, index=True)
    DurationDays = Column(Integer, nullable=False)
    Status = Column(String(20), nullable=False, default="aktif", index=True)
    TotalAmount = Column(Integer, nullable=False, default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    RentalItems = relationship(
        "RentalItem",
        back_populates="Rental",
        cascade="all, delete-orphan",
        order_by="RentalItem.Position",
    )
    Invoice = relationship("Invoice", back_populates="Rental", uselist=False, cascade="all, delete-orphan")


class RentalItem(Base):
    __tablename__ = "RentalItems"

    RentalItemID = Column(Integer, primary_key=True)
    RentalID = Column(Integer, ForeignKey("Rentals.RentalID"), nullable=False)
    ExcavatorID = Column(Integer, ForeignKey("Excavators.ExcavatorID"), nullable=False)
    Position = Column(Integer, nullable=False, default=0)
    ExcavatorName = Column(String(255))
    Brand = Column(String(255))
    Type = Column(String(255))
    OperatorName = Column(String(255))
    RegularRatePerHour = Column(Integer, nullable=False, default=0)
    OvertimeRatePerHour = Column(Integer, nullable=False, default=0)
    RegularHours = Column(Float, nullable=False, default=8)
    OvertimeHours = Column(Float, nullable=False, default=0)
    TotalRegularPay = Column(Integer, nullable=False, default=0)
    TotalOvertimePay = Column(Integer, nullable=False, default=0)
    TotalPay = Column(Integer, nullable=False, default=0)

    Rental = relationship("Rental", back_populates="RentalItems")
    Excavator = relationship("Excavator", back_populates="RentalItems")


class Invoice(Base):
    __tablename__ = "Invoices"

    InvoiceID = Column(Integer, primary_key=True)
    RentalID = Column(Integer, ForeignKey("Rentals.RentalID"), nullable=False, unique=True)
    InvoiceNumber = Column(String(50), nullable=False, unique=True)
    RenterName = Column(String(100), nullable=False)
    RenterPhone = Column(String(20), nullable=False)
    RenterEmail = Column(String(255))
    DateIssued = Column(DateTime, nullable=False)
    TotalRegularPay = Column(Integer, nullable=False, default=0)
    TotalOvertimePay = Column(Integer, nullable=False, default=0)
    TotalAmount = Column(Integer, nullable=False, default=0)
    IsPaid = Column(Boolean, nullable=False, default=False)
    Status = Column(String(20), nullable=False, default="pending")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Rental = relationship("Rental", back_populates="Invoice")
    InvoiceItems = relationship(
        "InvoiceItem",
        back_populates="Invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.Position",
    )


class InvoiceItem(Base):
    __tablename__ = "InvoiceItems"

    InvoiceItemID = Column(Integer, primary_key=True)
    InvoiceID = Column(Integer, ForeignKey("Invoices.InvoiceID"), nullable=False)
    Position = Column(Integer, nullable=False, default=0)
    ExcavatorName = Column(String(255))
    Brand = Column(String(255))
    Type = Column(String(255))
    OperatorName = Column(String(255))
    RegularRatePerHour = Column(Integer, nullable=False, default=0)
    OvertimeRatePerHour = Column(Integer, nullable=False, default=0)
    RegularHours = Column(Float, nullable=False, default=0)
    OvertimeHours = Column(Float, nullable=False, default=0)
    DurationDays = Column(Integer, nullable=False, default=1)
    TotalRegularPay = Column(Integer, nullable=False, default=0)
    TotalOvertimePay = Column(Integer, nullable=False, default=0)
    Total = Column(Integer, nullable=False, default=0)

    Invoice = relationship("Invoice", back_populates="InvoiceItems")


class Timesheet(Base):
    __tablename__ = "Timesheets"

    TimesheetID = Column(Integer, primary_key=True)
    ExcavatorID = Column(Integer, ForeignKey("Excavators.ExcavatorID"), nullable=False)
    ExcavatorName = Column(String(255))
    WorkDate = Column(Date, nullable=False, index=True)
    StartTime = Column(String(5), nullable=False)
    EndTime = Column(String(5), nullable=False)
    WorkHours = Column(Float, nullable=False, default=0)
    OvertimeHours = Column(Float, nullable=False, default=0)
    TotalWorks = Column(Float, nullable=False, default=0)
    TotalRegularPay = Column(Integer, nullable=False, default=0)
    TotalOvertimePay = Column(Integer, nullable=False, default=0)
    TotalPay = Column(Integer, nullable=False, default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Excavator = relationship("Excavator", back_populates="Timesheets")


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())
