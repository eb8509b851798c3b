"""
Custom permission classes for the textbook marketplace.
"""

from rest_framework import permissions


class IsTransactionParticipant(permissions.BasePermission):
    """
    Object-level permission allowing only the buyer or seller of a transaction.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsTransactionParticipant]
    """

    message = 'You are not a party to this transaction.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        """
        Check that the user is the buyer or the seller.

        Args:
            request: HTTP request object
            view: View being accessed
            obj: Transaction instance

        Returns:
            bool: True if the user takes part in the transaction
        """
        return obj.is_participant(request.user.id)
