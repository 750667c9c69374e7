from django.urls import path

from . import views

urlpatterns = [
    # Prescription queue
    path('provider/prescription-queue/', views.PrescriptionQueueView.as_view(), name='prescription-queue'),
    path(
        'provider/prescription-queue/<uuid:invoice_id>/',
        views.QueueItemDetailView.as_view(),
        name='prescription-queue-detail',
    ),
    path(
        'provider/prescription-queue/<uuid:invoice_id>/hold',
        views.QueueItemHoldView.as_view(),
        name='prescription-queue-hold',
    ),
    path(
        'provider/prescription-queue/<uuid:invoice_id>/resume',
        views.QueueItemResumeView.as_view(),
        name='prescription-queue-resume',
    ),

    # Prescriptions / orders
    path('prescriptions/', views.PrescriptionCreateView.as_view(), name='prescription-create'),
    path('orders/<uuid:order_id>/approve-and-send', views.OrderApproveAndSendView.as_view(), name='order-approve-and-send'),
    path('orders/<uuid:order_id>/decline', views.OrderDeclineView.as_view(), name='order-decline'),

    # SOAP notes
    path('soap-notes/', views.SoapNoteCreateView.as_view(), name='soap-note-create'),
    path('soap-notes/generate', views.SoapNoteGenerateView.as_view(), name='soap-note-generate'),
    path('soap-notes/<uuid:note_id>', views.SoapNoteDetailView.as_view(), name='soap-note-detail'),
    path('soap-notes/<uuid:note_id>/approve', views.SoapNoteApproveView.as_view(), name='soap-note-approve'),
    path('soap-notes/<uuid:note_id>/lock', views.SoapNoteLockView.as_view(), name='soap-note-lock'),

    # Patients
    path(
        'patients/<uuid:patient_id>/reconcile-address',
        views.PatientReconcileAddressView.as_view(),
        name='patient-reconcile-address',
    ),

    # Intake webhook: /api/intake/wellmedr/invoices
    path('intake/<slug:source>/invoices', views.IntakeInvoiceWebhookView.as_view(), name='intake-invoices'),
]
