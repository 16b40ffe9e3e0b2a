from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payment_system", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="settlementrecord",
            name="total_amount",
            field=models.DecimalField(decimal_places=3, max_digits=12),
        ),
        migrations.AlterField(
            model_name="settlementrecord",
            name="platform_commission",
            field=models.DecimalField(decimal_places=3, max_digits=12),
        ),
        migrations.AlterField(
            model_name="settlementrecord",
            name="seller_payout",
            field=models.DecimalField(decimal_places=3, max_digits=12),
        ),
        migrations.AlterField(
            model_name="reconciliationentry",
            name="amount",
            field=models.DecimalField(decimal_places=3, max_digits=12),
        ),
        migrations.AddField(
            model_name="reconciliationentry",
            name="declined_payouts",
            field=models.PositiveIntegerField(default=0, help_text="Payouts the provider refused outright"),
        ),
    ]
