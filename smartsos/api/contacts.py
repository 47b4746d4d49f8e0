"""Emergency contacts API."""

from fastapi import APIRouter, Depends, HTTPException, status

from smartsos.core.deps import get_contacts
from smartsos.core.errors import InvalidArgumentError, NotFoundError
from smartsos.schemas.contact import ContactCreate, ContactResponse
from smartsos.services.contact_book import ContactBook

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
def add_contact(
    data: ContactCreate,
    contacts: ContactBook = Depends(get_contacts),
):
    try:
        return contacts.add_contact(
            data.user_id,
            data.name,
            data.phone_number,
            relationship=data.relationship,
            priority=data.priority,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{user_id}", response_model=list[ContactResponse])
def list_contacts(
    user_id: str,
    contacts: ContactBook = Depends(get_contacts),
):
    """User's contacts, highest priority first."""
    return contacts.list_contacts(user_id)


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_contact(
    contact_id: str,
    contacts: ContactBook = Depends(get_contacts),
):
    try:
        contacts.remove_contact(contact_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
