"""
Pydantic schemas for the payment endpoints.

Request bodies keep the camelCase keys the web client sends. Fields the route
must check itself (so the response is our {"error": ...} body rather than a
422) are Optional here.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class JobPostData(BaseModel):
    """Job fields from the posting form; any client-sent amount is ignored"""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    type: Optional[str] = None
    classification: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    benefits: Optional[str] = None


class CompanyData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None


class CreatePaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_post_data: Optional[JobPostData] = Field(None, alias="jobPostData")
    company_data: Optional[CompanyData] = Field(None, alias="companyData")
    client_id: Optional[str] = Field(None, alias="clientId")
    existing_job_id: Optional[str] = Field(None, alias="existingJobId")


class CreatePaymentIntentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(..., alias="clientSecret")
    job_post_id: str = Field(..., alias="jobPostId")
    payment_intent_id: str = Field(..., alias="paymentIntentId")


class ClientRegisteredRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientId")
